"""Per-run side files: an event log and a table snapshot of the fetched batch.

Both files are append-only, named after the run's start time in epoch
milliseconds, and live in the configured log directory.  They are for
operators reading after the fact; nothing in the pipeline reads them back.
"""

import logging
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from src.triage.models import IncidentRecord

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
TABLE_HEADERS = ("EVENT_ID", "EVENT_SUBJECT", "EVENT_DESC")


def _cell(value: object) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def format_batch_table(incidents: Sequence[IncidentRecord]) -> str:
    """Render the fetched batch as a plain-text table, one incident per line.

    Columns are padded to their widest cell and separated by two spaces;
    EVENT_ID is right-aligned.  Line breaks inside a description are
    flattened so each incident stays on one line.  No incidents, no table.
    """
    if not incidents:
        return ""
    rows = [(_cell(i["event_id"]), _cell(i["subject"]), _cell(i["description"])) for i in incidents]
    id_w, subject_w, desc_w = (max(len(r[col]) for r in [TABLE_HEADERS, *rows]) for col in range(3))

    def line(event_id: str, subject: str, desc: str) -> str:
        return f"{event_id:>{id_w}}  {subject:<{subject_w}}  {desc}".rstrip()

    lines = [line(*TABLE_HEADERS), "  ".join("-" * w for w in (id_w, subject_w, desc_w))]
    lines.extend(line(*row) for row in rows)
    return "\n".join(lines)


class RunLog:
    """Paths of one run's side files. With no directory, writes are no-ops.

    Raises:
        OSError: If the log directory cannot be created.
    """

    def __init__(self, log_dir: str, started_ms: int) -> None:
        self.event_log: Path | None = None
        self.table_log: Path | None = None
        if log_dir:
            directory = Path(log_dir)
            directory.mkdir(parents=True, exist_ok=True)
            self.event_log = directory / f"output-{started_ms}.log"
            self.table_log = directory / f"table-{started_ms}.log"

    def write_batch_table(self, incidents: Sequence[IncidentRecord]) -> None:
        if self.table_log is None or not incidents:
            return
        try:
            with self.table_log.open("a", encoding="utf-8") as fh:
                fh.write(format_batch_table(incidents) + "\n")
        except OSError:
            logger.exception("Failed to write batch table to %s", self.table_log)


@contextmanager
def open_run_log(log_dir: str, logger_name: str = "src") -> Iterator[RunLog]:
    """Attach a file handler for this run's event log, detaching it on exit.

    Raises:
        OSError: On entry, if the directory or event log cannot be opened.
    """
    run_log = RunLog(log_dir, started_ms=int(time.time() * 1000))
    if run_log.event_log is None:
        yield run_log
        return

    handler = logging.FileHandler(run_log.event_log, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    target = logging.getLogger(logger_name)
    target.addHandler(handler)
    logger.debug("Event log: %s", run_log.event_log)
    try:
        yield run_log
    finally:
        target.removeHandler(handler)
        handler.close()
