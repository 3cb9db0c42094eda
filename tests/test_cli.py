"""Tests for the batch entry point — exit codes and side files."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from src.cli import main
from src.triage.errors import ExitCode
from src.triage.models import BatchOutcome, BatchSummary, RowResult, RowStatus

pytestmark = pytest.mark.integration


def _run_with(summary: BatchSummary) -> tuple[int, MagicMock]:
    orchestrator_cls = MagicMock()
    orchestrator_cls.return_value.run.return_value = summary
    with patch("src.cli.BatchOrchestrator", orchestrator_cls):
        code = main()
    return code, orchestrator_cls


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "triage.db"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test-fake")
    return tmp_path


class TestExitCodes:
    def test_nothing_to_do(self, env: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code, _ = _run_with(BatchSummary(outcome=BatchOutcome.NOTHING_TO_DO))
        assert code == ExitCode.OK
        assert "nothing_to_do" in capsys.readouterr().out

    def test_partial(self, env: Path) -> None:
        summary = BatchSummary(
            outcome=BatchOutcome.COMPLETED,
            fetched=2,
            rows=[
                RowResult(event_id=1, status=RowStatus.PERSISTED, priority="2"),
                RowResult(event_id=2, status=RowStatus.PERSIST_FAILED, priority="1", error="boom"),
            ],
        )
        code, _ = _run_with(summary)
        assert code == ExitCode.PARTIAL

    def test_aborted_uses_error_code(self, env: Path, capsys: pytest.CaptureFixture[str]) -> None:
        summary = BatchSummary(
            outcome=BatchOutcome.ABORTED, error="LLM call failed: 401", error_exit_code=ExitCode.INFERENCE
        )
        code, _ = _run_with(summary)
        assert code == ExitCode.INFERENCE
        assert "LLM call failed: 401" in capsys.readouterr().out

    def test_invalid_configuration(self, env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BATCH_SIZE", "0")
        code, orchestrator_cls = _run_with(BatchSummary(outcome=BatchOutcome.NOTHING_TO_DO))
        assert code == ExitCode.CONFIG
        orchestrator_cls.assert_not_called()

    def test_unusable_log_dir(self, env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        blocker = env / "blocker"
        blocker.write_text("", encoding="utf-8")
        monkeypatch.setenv("LOG_DIR", str(blocker / "logs"))

        code, orchestrator_cls = _run_with(BatchSummary(outcome=BatchOutcome.NOTHING_TO_DO))

        assert code == ExitCode.CONFIG
        orchestrator_cls.assert_not_called()


class TestEndToEndLocal:
    def test_empty_sqlite_store(self, env: Path) -> None:
        with patch("src.triage.batch.create_llm") as create_llm:
            code = main()

        assert code == ExitCode.OK
        create_llm.return_value.invoke.assert_not_called()
        assert list((env / "logs").glob("output-*.log"))

    def test_writes_metrics_textfile(self, env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        metrics_path = env / "triage.prom"
        monkeypatch.setenv("METRICS_TEXTFILE", str(metrics_path))

        _run_with(BatchSummary(outcome=BatchOutcome.NOTHING_TO_DO))

        assert "incident_triage_llm_calls_total" in metrics_path.read_text(encoding="utf-8")
