from datetime import date

import pytest
from typer.testing import CliRunner

import dtps_planner.cli.planner as planner
from dtps_planner.application.services import PlanningService
from dtps_planner.cli.planner import app
from tests.builders import make_phase, make_purchase
from tests.mock_dal import InMemoryPlanningRepository

runner = CliRunner()


@pytest.fixture()
def repository(monkeypatch) -> InMemoryPlanningRepository:
    repository = InMemoryPlanningRepository(
        purchases=[make_purchase(total_purchased_days=30)],
        phases=[
            make_phase("a", date(2024, 1, 1), 10, name="Kick-off"),
            make_phase("b", date(2024, 1, 11), 10),
        ],
    )
    repository.purchases["purchase-1"].days_used = 20
    service = PlanningService(repository, clock=lambda: date(2024, 1, 5))
    monkeypatch.setattr(planner, "_build_service", lambda: service)
    return repository


def test_chain_lists_phases(repository) -> None:
    result = runner.invoke(app, ["chain", "client-1"])

    assert result.exit_code == 0
    assert "Kick-off" in result.stdout
    assert "2024-01-11" in result.stdout


def test_chain_for_unknown_client(repository) -> None:
    result = runner.invoke(app, ["chain", "client-9"])
    assert result.exit_code == 0
    assert "No phases" in result.stdout


def test_view_reports_running_phase(repository) -> None:
    result = runner.invoke(app, ["view", "client-1"])
    assert result.exit_code == 0
    assert result.stdout.startswith("running: a")

    result = runner.invoke(app, ["view", "client-1", "--today", "2024-03-01"])
    assert "completed: b" in result.stdout


def test_allowance_exit_code_follows_verdict(repository) -> None:
    ok = runner.invoke(app, ["allowance", "client-1", "--days", "10"])
    assert ok.exit_code == 0
    assert "OK" in ok.stdout

    short = runner.invoke(app, ["allowance", "client-1", "--days", "11"])
    assert short.exit_code == 1
    assert "Only 10 days remaining in plan" in short.stdout


def test_create_prints_event(repository) -> None:
    result = runner.invoke(app, ["create", "purchase-1", "--days", "5"])

    assert result.exit_code == 0, result.stdout
    assert "phase-created" in result.stdout
    assert "2024-01-21" in result.stdout
    assert repository.purchases["purchase-1"].days_used == 25


def test_create_overlap_exits_non_zero(repository) -> None:
    result = runner.invoke(app, ["create", "purchase-1", "--days", "5", "--start-date", "2024-01-08"])

    assert result.exit_code == 1
    assert "next available start is 2024-01-11" in result.stdout


def test_extend_cascades(repository) -> None:
    result = runner.invoke(app, ["extend", "a", "--start-date", "2024-01-03"])

    assert result.exit_code == 0
    assert result.stdout.count("phase-extended") == 2
    assert repository.phases["b"].start_date == date(2024, 1, 13)


def test_freeze_and_freeze_info(repository) -> None:
    frozen = runner.invoke(app, ["freeze", "a", "2024-01-08", "2024-01-06"])
    assert frozen.exit_code == 0
    assert repository.phases["a"].end_date == date(2024, 1, 12)

    info = runner.invoke(app, ["freeze-info", "a"])
    assert "2/10 used" in info.stdout
    assert "2024-01-08" in info.stdout

    thawed = runner.invoke(app, ["unfreeze", "a", "2024-01-08"])
    assert thawed.exit_code == 0
    assert repository.phases["a"].end_date == date(2024, 1, 11)


def test_freeze_past_date_fails(repository) -> None:
    result = runner.invoke(app, ["freeze", "a", "2024-01-02"])
    assert result.exit_code == 1
    assert "past" in result.stdout


def test_pause_and_resume(repository) -> None:
    paused = runner.invoke(app, ["pause", "b", "--days", "3"])
    assert paused.exit_code == 0
    assert repository.phases["b"].status.value == "paused"
    assert repository.phases["b"].end_date == date(2024, 1, 20)

    resumed = runner.invoke(app, ["resume", "b"])
    assert resumed.exit_code == 0
    assert "phase-resumed" in resumed.stdout


def test_delete_requires_confirmation(repository) -> None:
    declined = runner.invoke(app, ["delete", "b"], input="n\n")
    assert declined.exit_code == 1
    assert "b" in repository.phases

    confirmed = runner.invoke(app, ["delete", "b", "--yes"])
    assert confirmed.exit_code == 0
    assert "b" not in repository.phases


def test_invalid_date_argument(repository) -> None:
    result = runner.invoke(app, ["extend", "a", "--start-date", "2024-1-3"])
    assert result.exit_code == 1
    assert "YYYY-MM-DD" in result.stdout


def test_unknown_phase(repository) -> None:
    result = runner.invoke(app, ["resume", "zzz"])
    assert result.exit_code == 1
    assert "not found" in result.stdout
