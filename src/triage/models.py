"""Records and result types passed between the triage pipeline stages."""

from enum import StrEnum
from typing import TypedDict

from pydantic import BaseModel, Field

from src.triage.errors import ExitCode


class IncidentRecord(TypedDict):
    event_id: int
    subject: str
    description: str | None


class ExtractionKind(StrEnum):
    NO_MATCH = "no_match"
    FENCED = "fenced"
    BARE = "bare"


class ClassificationResult(BaseModel):
    """One incident's model reply, the priority derived from it, and the stored form."""

    raw_response: str
    priority: str
    stored_response: str
    extraction: ExtractionKind
    used_default: bool = False


class RowStatus(StrEnum):
    PERSISTED = "persisted"
    PERSIST_FAILED = "persist_failed"
    INFERENCE_FAILED = "inference_failed"


class RowResult(BaseModel):
    event_id: int
    status: RowStatus
    priority: str | None = None
    error: str | None = None


class BatchOutcome(StrEnum):
    NOTHING_TO_DO = "nothing_to_do"
    COMPLETED = "completed"
    ABORTED = "aborted"


class BatchSummary(BaseModel):
    """What one batch run did. Rows skipped by an abort are not listed."""

    outcome: BatchOutcome
    fetched: int = 0
    rows: list[RowResult] = Field(default_factory=list)
    error: str | None = None
    error_exit_code: ExitCode | None = None

    @property
    def persisted(self) -> int:
        return sum(1 for r in self.rows if r.status is RowStatus.PERSISTED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.rows if r.status is not RowStatus.PERSISTED)

    @property
    def exit_code(self) -> ExitCode:
        if self.outcome is BatchOutcome.ABORTED:
            return self.error_exit_code or ExitCode.CONNECTION
        if self.failed:
            return ExitCode.PARTIAL
        return ExitCode.OK
