"""Run one incident triage batch and exit.

Usage:
    uv run python -m src.cli
    # or, once installed:
    incident-triage

Configuration comes from the environment / .env (see src.config.Settings).
The exit status tells a scheduler how the run ended: 0 ok, 1 bad
configuration or unusable LOG_DIR, 2 database unreachable, 3 query
failed, 4 LLM call failed, 5 some classifications could not be saved.
"""

import logging
import sys
from contextlib import ExitStack

from pydantic import ValidationError

from src.config import get_settings
from src.observability.metrics import write_metrics
from src.observability.runlog import open_run_log
from src.triage.batch import BatchOrchestrator
from src.triage.errors import ExitCode

logger = logging.getLogger(__name__)


def main() -> int:
    """Run a single batch; return the process exit code."""
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return ExitCode.CONFIG

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(levelname)s: %(message)s",
    )

    with ExitStack() as stack:
        try:
            run_log = stack.enter_context(open_run_log(settings.log_dir))
        except OSError as e:
            logger.error("Cannot open run log in %s: %s", settings.log_dir, e)
            return ExitCode.CONFIG
        summary = BatchOrchestrator(settings, run_log=run_log).run()

    if settings.metrics_textfile:
        try:
            write_metrics(settings.metrics_textfile)
        except OSError:
            logger.exception("Failed to write metrics to %s", settings.metrics_textfile)

    print(
        f"{summary.outcome}: fetched={summary.fetched} persisted={summary.persisted} failed={summary.failed}"
        + (f" error={summary.error}" if summary.error else "")
    )
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
