"""One triage pass: fetch pending incidents, classify each, write the results back.

The orchestrator owns a single connection for the length of one run and
always releases it, whether the batch completes or stops early.  Each row
goes classify -> extract -> truncate -> persist.  A failed stage produces a
:class:`TriageError`, and its ``kind`` decides whether the loop moves on to
the next incident or the rest of the batch is abandoned.
"""

import logging
import time
from collections.abc import Callable

from src.config import Settings
from src.observability.metrics import BATCH_DURATION, BATCH_RUNS_TOTAL, EXTRACTIONS_TOTAL, ROWS_TOTAL
from src.observability.runlog import RunLog
from src.store import db
from src.triage.classifier import IncidentClassifier
from src.triage.errors import InferenceError, PersistenceError, TriageError
from src.triage.extractor import extract, priority_from_payload
from src.triage.llm import create_llm
from src.triage.models import (
    BatchOutcome,
    BatchSummary,
    ClassificationResult,
    IncidentRecord,
    RowResult,
    RowStatus,
)
from src.triage.truncate import truncate_to_bytes

logger = logging.getLogger(__name__)


def normalize_response(raw: str, *, max_bytes: int, default_priority: str) -> ClassificationResult:
    """Derive the priority from a model reply and fit the reply to its column.

    The stored text is cut from the raw reply, not from the extracted
    payload, so the two are independent.
    """
    extraction = extract(raw)
    EXTRACTIONS_TOTAL.labels(kind=extraction.kind).inc()
    code = priority_from_payload(extraction.payload)
    if code is None:
        logger.warning("No usable priority in model reply (%s); using default %s", extraction.kind, default_priority)

    stored = truncate_to_bytes(raw, max_bytes) or ""
    return ClassificationResult(
        raw_response=raw,
        priority=code or default_priority,
        stored_response=stored,
        extraction=extraction.kind,
        used_default=code is None,
    )


class BatchOrchestrator:
    """Runs one batch against one connection with a fixed configuration."""

    def __init__(
        self,
        settings: Settings,
        classifier: IncidentClassifier | None = None,
        connect: Callable[[], db.Connection] | None = None,
        run_log: RunLog | None = None,
    ) -> None:
        self.settings = settings
        self._classifier = classifier or IncidentClassifier(create_llm(settings))
        self._connect = connect or (lambda: db.connect(settings))
        self._run_log = run_log
        self._conn: db.Connection | None = None

    def run(self) -> BatchSummary:
        """Process one batch and report what happened. Never raises TriageError."""
        start = time.monotonic()
        summary = self._run()
        BATCH_DURATION.observe(time.monotonic() - start)
        BATCH_RUNS_TOTAL.labels(outcome=summary.outcome).inc()
        logger.info(
            "Batch %s: fetched=%d persisted=%d failed=%d",
            summary.outcome,
            summary.fetched,
            summary.persisted,
            summary.failed,
        )
        return summary

    def _run(self) -> BatchSummary:
        try:
            self._conn = self._connect()
        except TriageError as exc:
            logger.error("Error connecting to the database: %s", exc)
            return _aborted(exc)

        try:
            return self._process_batch(self._conn)
        finally:
            self._disconnect()

    def _process_batch(self, conn: db.Connection) -> BatchSummary:
        settings = self.settings
        try:
            incidents = db.fetch_pending_incidents(
                conn,
                state_id=settings.event_state_id,
                agenda_id=settings.event_agenda_id,
                template=settings.event_template,
                batch_size=settings.batch_size,
                dialect=settings.db_backend,
            )
        except TriageError as exc:
            logger.error("Error executing query: %s", exc)
            return _aborted(exc)

        if not incidents:
            logger.info("No pending incidents found")
            return BatchSummary(outcome=BatchOutcome.NOTHING_TO_DO)

        if self._run_log is not None:
            self._run_log.write_batch_table(incidents)

        rows: list[RowResult] = []
        for incident in incidents:
            row, error = self._process_row(conn, incident)
            rows.append(row)
            ROWS_TOTAL.labels(status=row.status).inc()
            if error is not None and self._aborts_batch(error):
                skipped = len(incidents) - len(rows)
                logger.error("Aborting batch at EVENT_ID %s, %d incident(s) left unprocessed", row.event_id, skipped)
                return _aborted(error, fetched=len(incidents), rows=rows)

        return BatchSummary(outcome=BatchOutcome.COMPLETED, fetched=len(incidents), rows=rows)

    def _process_row(self, conn: db.Connection, incident: IncidentRecord) -> tuple[RowResult, TriageError | None]:
        event_id = incident["event_id"]
        try:
            raw = self._classifier.classify(incident["subject"], incident["description"])
        except InferenceError as exc:
            logger.error("Error communicating with the LLM for EVENT_ID %s: %s", event_id, exc)
            return RowResult(event_id=event_id, status=RowStatus.INFERENCE_FAILED, error=str(exc)), exc

        result = normalize_response(
            raw,
            max_bytes=self.settings.response_max_bytes,
            default_priority=self.settings.default_priority,
        )
        try:
            db.save_classification(
                conn,
                event_id=event_id,
                response=result.stored_response,
                priority=self._stored_priority(result.priority),
            )
        except PersistenceError as exc:
            logger.error("Error inserting data for EVENT_ID %s: %s", event_id, exc)
            return (
                RowResult(event_id=event_id, status=RowStatus.PERSIST_FAILED, priority=result.priority, error=str(exc)),
                exc,
            )

        return RowResult(event_id=event_id, status=RowStatus.PERSISTED, priority=result.priority), None

    def _aborts_batch(self, error: TriageError) -> bool:
        if isinstance(error, InferenceError) and not self.settings.abort_on_inference_error:
            return False
        return error.is_fatal

    def _stored_priority(self, code: str) -> str:
        if self.settings.quote_priority:
            return f'"{code}"'
        return code

    def _disconnect(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
            logger.info("Connection closed")
        except Exception:
            logger.exception("Error closing connection")
        finally:
            self._conn = None


def _aborted(error: TriageError, fetched: int = 0, rows: list[RowResult] | None = None) -> BatchSummary:
    return BatchSummary(
        outcome=BatchOutcome.ABORTED,
        fetched=fetched,
        rows=rows or [],
        error=str(error),
        error_exit_code=error.exit_code,
    )
