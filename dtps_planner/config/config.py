"""
Centralised config for the meal-plan scheduler.

This module consolidates all configuration settings, loading sensitive values
from environment variables and providing typed, validated access to them
through a singleton `settings` object.
"""

import os
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar
from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_FILE = Path(__file__).resolve()


def _discover_project_root(config_file: Path) -> tuple[Path, Path]:
    """Return a project root and env file path without assuming ``.env`` exists.

    Deployments keep a ``.env`` file next to the checkout, while development
    and CI usually have none. Walk the parents looking for one and fall back to
    the directory holding the project markers when it is missing.
    """

    parents = list(config_file.parents)

    for parent in parents:
        env_file = parent / ".env"
        if env_file.exists():
            return parent, env_file

    for marker in ("pyproject.toml", ".git"):
        for parent in parents:
            if (parent / marker).exists():
                return parent, parent / ".env"

    fallback_root = parents[1] if len(parents) > 1 else parents[0]
    return fallback_root, fallback_root / ".env"


PROJECT_ROOT, ENV_FILE_PATH = _discover_project_root(CONFIG_FILE)


T = TypeVar("T")


class Settings(BaseSettings):
    """
    Centralised and validated application settings.
    """
    model_config = SettingsConfigDict(
        env_file=ENV_FILE_PATH, env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # --- CORE APP SETTINGS ---
    PROJECT_ROOT: Path = PROJECT_ROOT
    ENVIRONMENT: str = "development"
    DATABASE_URL: Optional[str] = Field(None, validate_default=True)

    # --- API ---
    PLANNER_API_KEY: str | None = None

    # --- LOGGING ---
    PLANNER_LOG_LEVEL: str = "INFO"
    PLANNER_LOG_TO_CONSOLE: bool = True
    PLANNER_LOG_DIR: Path | None = None

    # --- DATABASE CONNECTION (from environment) ---
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = SecretStr("")
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "dtps"
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 5

    # --- FREEZE POLICY ---
    FREEZE_DAYS_PER_MONTH: int = 10
    FREEZE_MONTH_LENGTH_DAYS: int = 30
    SHARE_FREEZE_ACROSS_PHASES: bool = True

    @model_validator(mode="after")
    def build_database_url(self) -> "Settings":
        """Construct ``DATABASE_URL`` from the ``POSTGRES_*`` values when unset."""
        if self.DATABASE_URL:
            return self

        db_host = os.getenv("DB_HOST_OVERRIDE", self.POSTGRES_HOST)
        conninfo_params = {
            "user": self.POSTGRES_USER,
            "password": self.POSTGRES_PASSWORD.get_secret_value(),
            "host": db_host,
            "port": self.POSTGRES_PORT,
            "dbname": self.POSTGRES_DB,
        }

        self.DATABASE_URL = _build_conninfo(conninfo_params)
        return self

    # --- DYNAMIC FILE PATHS ---
    @property
    def log_path(self) -> Path:
        """
        Path for the main application log file.

        Uses ``PLANNER_LOG_DIR`` when configured, then ``/var/log/dtps_planner``
        when writable, and otherwise a directory under the user's home.
        """
        if self.PLANNER_LOG_DIR is not None:
            return Path(self.PLANNER_LOG_DIR) / "planner_history.log"

        prod_log_dir = Path("/var/log/dtps_planner")
        if prod_log_dir.exists() and os.access(prod_log_dir, os.W_OK):
            return prod_log_dir / "planner_history.log"

        fallback_dir = Path.home() / "dtps_logs"
        return fallback_dir / "planner_history.log"


def _build_conninfo(params: dict[str, Any]) -> str:
    """Return a libpq-compatible connection string from keyword parameters."""

    from psycopg.conninfo import make_conninfo

    return make_conninfo(**params)


# Create a single, importable instance of the settings for the entire application.
settings = Settings()


def _coerce_secret(value: Any) -> Any:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value


def _to_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _coerce_type(raw: str, template: Any) -> Any:
    if isinstance(template, bool):
        return _to_bool(raw)
    if isinstance(template, int) and not isinstance(template, bool):
        return int(raw)
    if isinstance(template, float):
        return float(raw)
    if isinstance(template, Path):
        return Path(raw)
    return raw


def get_env(
    name: str,
    default: T | None = None,
    *,
    parser: Callable[[str], T] | None = None,
) -> T | Any | None:
    """Return a configuration value resolving environment overrides consistently.

    The resolution order is:

    1. Explicit environment variable overrides at runtime.
    2. Typed values provided by the Pydantic ``settings`` object.
    3. The supplied ``default`` value.

    When an override is read directly from :mod:`os.environ`, ``parser`` (or the
    inferred type from ``settings``) is used to coerce the string into the
    expected type.
    """

    if name in os.environ:
        raw_value = os.environ[name]
        if parser is not None:
            return parser(raw_value)
        if hasattr(settings, name):
            template = _coerce_secret(getattr(settings, name))
            try:
                return _coerce_type(raw_value, template)
            except (TypeError, ValueError):
                return template
        return raw_value

    if hasattr(settings, name):
        return _coerce_secret(getattr(settings, name))

    return default
