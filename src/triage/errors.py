"""Failure taxonomy for a triage batch run.

Every error carries a ``kind`` telling the batch loop whether the current
row can be skipped (RECOVERABLE) or the remaining batch must stop (FATAL),
and the process exit code to report when it ends the run.
"""

from enum import IntEnum, StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


class ExitCode(IntEnum):
    OK = 0
    CONFIG = 1
    CONNECTION = 2
    QUERY = 3
    INFERENCE = 4
    PARTIAL = 5


class TriageError(Exception):
    """Base class for errors raised at the storage and inference boundaries."""

    kind: ClassVar[ErrorKind] = ErrorKind.FATAL
    exit_code: ClassVar[ExitCode] = ExitCode.CONNECTION

    @property
    def is_fatal(self) -> bool:
        return self.kind is ErrorKind.FATAL


class StoreConnectionError(TriageError):
    """The database could not be reached; nothing can be processed."""

    exit_code = ExitCode.CONNECTION


class QueryError(TriageError):
    """The pending-incident query failed; there is no batch to work on."""

    exit_code = ExitCode.QUERY


class InferenceError(TriageError):
    """The model call failed (auth, rate limit, network, unexpected reply shape)."""

    exit_code = ExitCode.INFERENCE


class PersistenceError(TriageError):
    """Writing one classification failed. Only that row is lost."""

    kind = ErrorKind.RECOVERABLE
    exit_code = ExitCode.PARTIAL
