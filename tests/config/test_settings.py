from pathlib import Path

import pytest
from psycopg.conninfo import make_conninfo

from dtps_planner.config import get_env
from dtps_planner.config.config import Settings


@pytest.fixture()
def base_settings_data() -> dict:
    return {
        "DATABASE_URL": None,
        "POSTGRES_USER": "postgres-user",
        "POSTGRES_PASSWORD": "postgres-password",
        "POSTGRES_HOST": "postgres-host",
        "POSTGRES_PORT": 5432,
        "POSTGRES_DB": "postgres-db",
    }


@pytest.fixture(autouse=True)
def _no_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)


def test_database_url_uses_postgres_host(monkeypatch: pytest.MonkeyPatch, base_settings_data: dict) -> None:
    monkeypatch.delenv("DB_HOST_OVERRIDE", raising=False)
    settings = Settings(**base_settings_data)

    expected = make_conninfo(
        user=base_settings_data["POSTGRES_USER"],
        password=base_settings_data["POSTGRES_PASSWORD"],
        host=base_settings_data["POSTGRES_HOST"],
        port=base_settings_data["POSTGRES_PORT"],
        dbname=base_settings_data["POSTGRES_DB"],
    )

    assert settings.DATABASE_URL == expected


def test_database_url_uses_override(monkeypatch: pytest.MonkeyPatch, base_settings_data: dict) -> None:
    override_host = "override-host"
    monkeypatch.setenv("DB_HOST_OVERRIDE", override_host)
    settings = Settings(**base_settings_data)

    expected = make_conninfo(
        user=base_settings_data["POSTGRES_USER"],
        password=base_settings_data["POSTGRES_PASSWORD"],
        host=override_host,
        port=base_settings_data["POSTGRES_PORT"],
        dbname=base_settings_data["POSTGRES_DB"],
    )

    assert settings.DATABASE_URL == expected


def test_explicit_database_url_is_kept(base_settings_data: dict) -> None:
    base_settings_data["DATABASE_URL"] = "postgresql://planner@db/planner"
    settings = Settings(**base_settings_data)
    assert settings.DATABASE_URL == "postgresql://planner@db/planner"


def test_log_path_prefers_configured_directory(tmp_path: Path, base_settings_data: dict) -> None:
    settings = Settings(PLANNER_LOG_DIR=tmp_path, **base_settings_data)
    assert settings.log_path == tmp_path / "planner_history.log"


def test_freeze_policy_defaults(base_settings_data: dict) -> None:
    settings = Settings(**base_settings_data)
    assert settings.FREEZE_DAYS_PER_MONTH == 10
    assert settings.FREEZE_MONTH_LENGTH_DAYS == 30
    assert settings.SHARE_FREEZE_ACROSS_PHASES is True


def test_get_env_coerces_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FREEZE_DAYS_PER_MONTH", "7")
    monkeypatch.setenv("SHARE_FREEZE_ACROSS_PHASES", "no")

    assert get_env("FREEZE_DAYS_PER_MONTH") == 7
    assert get_env("SHARE_FREEZE_ACROSS_PHASES") is False
    assert get_env("NOT_A_SETTING", default="fallback") == "fallback"
    assert get_env("FREEZE_DAYS_PER_MONTH", parser=lambda raw: raw + "!") == "7!"
