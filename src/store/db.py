"""Incident store — connection management, schema init, fetch and write-back.

All statements use named binds (``:name``), which both sqlite3 and
python-oracledb accept, so only the row-limit clause differs per backend.
Library errors are wrapped in the triage error types at this boundary.
"""

import logging
import sqlite3
from typing import Any, Protocol

from src.config import Settings
from src.triage.errors import PersistenceError, QueryError, StoreConnectionError
from src.triage.models import IncidentRecord

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """The slice of a DB-API 2.0 connection the pipeline uses."""

    def cursor(self) -> Any: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS event (
    event_id       INTEGER PRIMARY KEY,
    event_subject  TEXT NOT NULL,
    event_desc     TEXT,
    state_id       INTEGER NOT NULL,
    sys_agenda_id  INTEGER NOT NULL,
    event_template INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_event_pending ON event(state_id, sys_agenda_id, event_template);

CREATE TABLE IF NOT EXISTS event_ai (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id    INTEGER NOT NULL REFERENCES event(event_id),
    response    TEXT,
    priority    TEXT NOT NULL,
    created_at  TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_event_ai_event ON event_ai(event_id);
"""

_PENDING_WHERE = """\
    FROM event
    WHERE state_id = :state_id
      AND sys_agenda_id = :agenda_id
      AND event_template = :template
      AND NOT EXISTS (SELECT 1 FROM event_ai WHERE event_ai.event_id = event.event_id)"""

_FETCH_SQL = {
    "sqlite": f"SELECT event_id, event_subject, event_desc\n{_PENDING_WHERE}\n    LIMIT :batch_size",
    "oracle": f"SELECT event_id, event_subject, event_desc\n{_PENDING_WHERE}\n      AND ROWNUM <= :batch_size",
}

_INSERT_SQL = """\
INSERT INTO event_ai (event_id, response, priority)
VALUES (:event_id, :response, :priority)"""


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


def get_sqlite_connection(db_path: str) -> sqlite3.Connection:
    """Open a SQLite connection with foreign keys enforced.

    Args:
        db_path: Path to the database file, or ":memory:" (tests).

    Raises:
        StoreConnectionError: If the path is empty or cannot be opened.
    """
    if not db_path:
        msg = "SQLite store not configured (SQLITE_DB_PATH is empty)"
        raise StoreConnectionError(msg)
    try:
        conn = sqlite3.connect(db_path)
        conn.execute("PRAGMA foreign_keys=ON")
    except sqlite3.Error as exc:
        msg = f"Cannot open SQLite database {db_path}: {exc}"
        raise StoreConnectionError(msg) from exc
    return conn


def get_oracle_connection(settings: Settings) -> Connection:
    """Open an Oracle connection with python-oracledb.

    Thick mode (Instant Client) is used when ``oracle_client_lib_dir`` is
    set, thin mode otherwise.  LOB columns are fetched as plain strings.

    Raises:
        StoreConnectionError: On client init or login failure.
    """
    import oracledb

    oracledb.defaults.fetch_lobs = False
    try:
        if settings.oracle_client_lib_dir:
            oracledb.init_oracle_client(lib_dir=settings.oracle_client_lib_dir)
        return oracledb.connect(
            user=settings.oracle_username,
            password=settings.oracle_password,
            dsn=settings.oracle_connstring,
        )
    except oracledb.Error as exc:
        msg = f"Cannot connect to Oracle at {settings.oracle_connstring}: {exc}"
        raise StoreConnectionError(msg) from exc


def connect(settings: Settings) -> Connection:
    """Open a connection to the configured backend."""
    logger.info("Connecting to %s database", settings.db_backend)
    if settings.db_backend == "oracle":
        conn = get_oracle_connection(settings)
    else:
        conn = get_sqlite_connection(settings.sqlite_db_path)
        try:
            init_schema(conn)
        except sqlite3.Error as exc:
            conn.close()
            msg = f"Cannot initialise schema in {settings.sqlite_db_path}: {exc}"
            raise StoreConnectionError(msg) from exc
    logger.info("Connection successful")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they don't exist (idempotent, SQLite only)."""
    conn.executescript(_SCHEMA_SQL)


# ---------------------------------------------------------------------------
# Incidents
# ---------------------------------------------------------------------------


def fetch_pending_incidents(
    conn: Connection,
    *,
    state_id: int,
    agenda_id: int,
    template: int,
    batch_size: int,
    dialect: str = "sqlite",
) -> list[IncidentRecord]:
    """Fetch up to ``batch_size`` incidents that have no classification yet.

    Rows come back in whatever order the database chooses.

    Raises:
        QueryError: If the query fails.
    """
    sql = _FETCH_SQL[dialect]
    params = {"state_id": state_id, "agenda_id": agenda_id, "template": template, "batch_size": batch_size}
    logger.info("Executing query: %s", " ".join(sql.split()))
    cursor = conn.cursor()
    try:
        cursor.execute(sql, params)
        rows = cursor.fetchall()
    except Exception as exc:
        msg = f"Pending-incident query failed: {exc}"
        raise QueryError(msg) from exc
    finally:
        cursor.close()
    logger.info("Query returned %d row(s)", len(rows))
    return [IncidentRecord(event_id=r[0], subject=r[1], description=r[2]) for r in rows]


def save_event(
    conn: sqlite3.Connection,
    *,
    event_id: int,
    subject: str,
    description: str | None = None,
    state_id: int,
    agenda_id: int,
    template: int = 0,
) -> None:
    """Insert an incident into the local SQLite schema (seeding, tests)."""
    conn.execute(
        """INSERT INTO event
           (event_id, event_subject, event_desc, state_id, sys_agenda_id, event_template)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (event_id, subject, description, state_id, agenda_id, template),
    )
    conn.commit()


# ---------------------------------------------------------------------------
# Classifications
# ---------------------------------------------------------------------------


def save_classification(
    conn: Connection,
    *,
    event_id: int,
    response: str | None,
    priority: str,
) -> None:
    """Insert one classification and commit it.

    Raises:
        PersistenceError: If the insert or commit fails; the transaction is rolled back.
    """
    logger.info("Inserting EVENT_AI entry for EVENT_ID %s", event_id)
    cursor = conn.cursor()
    try:
        cursor.execute(_INSERT_SQL, {"event_id": event_id, "response": response, "priority": priority})
        conn.commit()
    except Exception as exc:
        try:
            conn.rollback()
        except Exception:
            logger.debug("Rollback after failed insert also failed", exc_info=True)
        msg = f"Insert for EVENT_ID {event_id} failed: {exc}"
        raise PersistenceError(msg) from exc
    finally:
        cursor.close()
    logger.info("Inserted EVENT_AI entry for EVENT_ID %s", event_id)


def get_classifications(conn: sqlite3.Connection) -> list[dict[str, object]]:
    """Return all stored classifications, oldest first (SQLite only)."""
    rows = conn.execute(
        "SELECT event_id, response, priority, created_at FROM event_ai ORDER BY id"
    ).fetchall()
    return [{"event_id": r[0], "response": r[1], "priority": r[2], "created_at": r[3]} for r in rows]
