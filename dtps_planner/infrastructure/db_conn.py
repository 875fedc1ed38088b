"""Utility helpers for database connection configuration."""

from __future__ import annotations

import os


def get_database_url() -> str:
    """Return the configured PostgreSQL connection URL.

    ``DATABASE_URL`` from the process environment wins so a single command can
    point at another database. Otherwise the value assembled from the
    ``POSTGRES_*`` settings is used.
    """

    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url

    from dtps_planner.config.config import settings

    settings_url = settings.DATABASE_URL
    if settings_url:
        return settings_url

    raise RuntimeError(
        "Database connection information is missing. Set the DATABASE_URL "
        "environment variable or configure the POSTGRES_* variables."
    )
