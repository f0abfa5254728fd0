"""Tests for CLI commands. The analysis service is never contacted (mocked)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from sonarbridge.cli import main
from sonarbridge.exceptions import ConfigurationError, LockBusyError
from sonarbridge.locking import LOCK_FILENAME, ProjectLockManager
from sonarbridge.models.scan import AnalysisTask, Issue, TaskStatus


def _runner() -> CliRunner:
    # keep log lines out of the captured output
    return CliRunner(env={"SONARBRIDGE_LOG_LEVEL": "ERROR"})


def _python_project(tmp_path):
    (tmp_path / "requirements.txt").write_text("")
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "main.py").write_text("x = 1\n")
    return tmp_path


def _orchestrator(**run_kwargs) -> MagicMock:
    orch = MagicMock()
    orch.run = AsyncMock(**run_kwargs)
    return orch


# ── params ──


class TestParams:
    def test_json_output(self, tmp_path):
        project = _python_project(tmp_path)
        result = _runner().invoke(
            main, ["params", str(project), "--json", "-D", "sonar.branch.name=dev"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["stacks"] == ["python"]
        assert data["scanner"] == "sonar-scanner"
        assert data["properties"]["sonar.sources"] == "app"
        assert data["properties"]["sonar.branch.name"] == "dev"

    def test_text_output_marks_overrides(self, tmp_path):
        project = _python_project(tmp_path)
        result = _runner().invoke(main, ["params", str(project), "-D", "sonar.sources=lib"])
        assert result.exit_code == 0, result.output
        assert "sonar.sources=lib (override)" in result.output

    def test_bad_define(self, tmp_path):
        result = _runner().invoke(main, ["params", str(tmp_path), "-D", "novalue"])
        assert result.exit_code != 0
        assert "key=value" in result.output


# ── scan ──


class TestScan:
    def test_prints_issues(self, tmp_path):
        task = AnalysisTask(task_id="AX1", status=TaskStatus.SUCCESS)
        task.issues = [
            Issue("i1", "python:S1481", "MAJOR", "CODE_SMELL", "svc:app/main.py", "Unused variable", 1)
        ]
        orch = _orchestrator(return_value=task)
        with patch("sonarbridge.cli.build_orchestrator", return_value=orch):
            result = _runner().invoke(main, ["scan", str(tmp_path), "--severity", "major"])

        assert result.exit_code == 0, result.output
        assert "Analysis SUCCESS: task AX1" in result.output
        assert "[MAJOR] CODE_SMELL svc:app/main.py:1 - Unused variable" in result.output
        request = orch.run.call_args.args[0]
        assert request.severity_filter == ("MAJOR",)

    def test_json_output(self, tmp_path):
        orch = _orchestrator(return_value=AnalysisTask(task_id="AX1", status=TaskStatus.SUCCESS))
        with patch("sonarbridge.cli.build_orchestrator", return_value=orch):
            result = _runner().invoke(main, ["scan", str(tmp_path), "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data == {"task_id": "AX1", "status": "SUCCESS", "issues": [], "progress": None}

    def test_failure_shows_user_message(self, tmp_path):
        orch = _orchestrator(side_effect=LockBusyError("busy", correlation_id="cid-1"))
        with patch("sonarbridge.cli.build_orchestrator", return_value=orch):
            result = _runner().invoke(main, ["scan", str(tmp_path)])
        assert result.exit_code == 1
        assert "Another analysis is already running" in result.output
        assert "cid-1" in result.output

    def test_json_failure_hides_internals(self, tmp_path):
        error = ConfigurationError(
            "sonar-scanner not found at /opt/tools/bin",
            correlation_id="cid-2",
            context={"path": "/home/ci/work/svc", "output_tail": "ERROR at /home/ci"},
        )
        orch = _orchestrator(side_effect=error)
        with patch("sonarbridge.cli.build_orchestrator", return_value=orch):
            result = _runner().invoke(main, ["scan", str(tmp_path), "--json"])

        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data == {
            "error": {
                "kind": "configuration",
                "user_message": error.user_message(),
                "correlation_id": "cid-2",
            }
        }
        assert "/home/ci" not in result.output
        assert "/opt/tools" not in result.output

    def test_invalid_override(self, tmp_path):
        with patch("sonarbridge.cli.build_orchestrator") as mock_build:
            result = _runner().invoke(main, ["scan", str(tmp_path), "-D", "sonar.token=x"])
        assert result.exit_code == 1
        assert "Invalid input" in result.output
        mock_build.assert_not_called()


# ── lock ──


class TestLock:
    def test_status_unlocked(self, tmp_path):
        result = _runner().invoke(main, ["lock", "status", str(tmp_path)])
        assert result.exit_code == 0
        assert "unlocked" in result.output

    def test_status_held(self, tmp_path):
        ProjectLockManager().acquire(tmp_path, holder_id="host:1:abc")
        result = _runner().invoke(main, ["lock", "status", str(tmp_path)])
        assert result.exit_code == 0
        assert "held by host:1:abc" in result.output

    def test_clear(self, tmp_path):
        ProjectLockManager().acquire(tmp_path)
        result = _runner().invoke(main, ["lock", "clear", str(tmp_path), "--yes"])
        assert result.exit_code == 0
        assert "lock removed" in result.output
        assert not (tmp_path / LOCK_FILENAME).exists()

    def test_clear_asks_for_confirmation(self, tmp_path):
        ProjectLockManager().acquire(tmp_path)
        result = _runner().invoke(main, ["lock", "clear", str(tmp_path)], input="n\n")
        assert result.exit_code != 0
        assert (tmp_path / LOCK_FILENAME).exists()

    def test_clear_nothing(self, tmp_path):
        result = _runner().invoke(main, ["lock", "clear", str(tmp_path), "--yes"])
        assert "no lock marker found" in result.output
