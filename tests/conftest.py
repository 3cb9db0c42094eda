"""Shared pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from src.config import Settings, get_settings
from src.store.db import get_sqlite_connection, init_schema, save_event

STATE_ID = 96719
AGENDA_ID = 3907041


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run e2e tests that hit real services (requires .env with valid credentials)",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: multi-module tests with local collaborators")
    config.addinivalue_line("markers", "e2e: tests that call the real LLM API")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="Need --run-e2e flag to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def _no_dotenv(request: pytest.FixtureRequest) -> Generator[None]:
    """Block .env loading so a developer's local credentials never leak into unit tests.

    Sets Settings.model_config['env_file'] = None before each test (except e2e).
    """
    if "e2e" in request.keywords:
        yield
        return

    get_settings.cache_clear()
    original = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    try:
        yield
    finally:
        Settings.model_config["env_file"] = original
        get_settings.cache_clear()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Path to a fresh SQLite database with the schema created."""
    path = str(tmp_path / "triage.db")
    conn = get_sqlite_connection(path)
    init_schema(conn)
    conn.close()
    return path


@pytest.fixture
def settings(db_path: str, tmp_path: Path) -> Settings:
    """Explicit settings pointing at the temporary database; no env, no .env."""
    return Settings(
        anthropic_api_key="sk-ant-test-fake",
        db_backend="sqlite",
        sqlite_db_path=db_path,
        event_state_id=STATE_ID,
        event_agenda_id=AGENDA_ID,
        event_template=0,
        batch_size=5,
        response_max_bytes=200,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def seed(db_path: str) -> Callable[[list[tuple[int, str, str | None]]], None]:
    """Insert pending incidents (id, subject, description) matching the default filters."""

    def _seed(incidents: list[tuple[int, str, str | None]]) -> None:
        conn = get_sqlite_connection(db_path)
        try:
            for event_id, subject, description in incidents:
                save_event(
                    conn,
                    event_id=event_id,
                    subject=subject,
                    description=description,
                    state_id=STATE_ID,
                    agenda_id=AGENDA_ID,
                )
        finally:
            conn.close()

    return _seed
