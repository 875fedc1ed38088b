import dtps_planner.cli.planner as planner
import dtps_planner.cli.status as status
from dtps_planner.cli.planner import app
from dtps_planner.cli.status import CheckResult, render_results, run_status_checks
from typer.testing import CliRunner


runner = CliRunner()


def test_status_cli_all_ok(monkeypatch):
    """CLI exits with code 0 when all dependencies are healthy."""
    stub = lambda *, timeout=status.DEFAULT_TIMEOUT_SECONDS, checks=None: [
        CheckResult("DB", True, "3ms"),
        CheckResult("Schema", True, "3 tables"),
        CheckResult("Logs", True, "/tmp/logs"),
    ]
    monkeypatch.setattr(planner, "run_status_checks", stub)

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "DB" in result.stdout
    assert "Schema" in result.stdout
    assert "OK" in result.stdout


def test_status_cli_failure_propagates(monkeypatch):
    """CLI exits with non-zero when any dependency fails."""
    captured = {}

    def fake_checks(*, timeout, checks=None):
        captured["timeout"] = timeout
        return [
            CheckResult("DB", False, "connection refused"),
            CheckResult("Schema", False, "connection refused"),
            CheckResult("Logs", True, "/tmp/logs"),
        ]

    monkeypatch.setattr(planner, "run_status_checks", fake_checks)

    result = runner.invoke(app, ["status", "--timeout", "2.5"])

    assert result.exit_code == 1
    assert "FAIL" in result.stdout
    assert "connection refused" in result.stdout
    assert captured["timeout"] == 2.5


def test_run_status_checks_accepts_custom_checks():
    results = run_status_checks(checks=[lambda: CheckResult("Custom", True, "fine")])
    assert render_results(results) == "Custom   OK   fine"


def test_log_dir_check_uses_configured_directory(monkeypatch, tmp_path):
    monkeypatch.setattr(status.settings, "PLANNER_LOG_DIR", tmp_path)
    result = status.check_log_dir()
    assert result.ok
    assert result.detail == str(tmp_path)
