"""Health check command support for the dtps CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass
from time import perf_counter
from typing import Callable, Iterable, List, Sequence

import psycopg

from dtps_planner.config import settings
from dtps_planner.infrastructure.db_conn import get_database_url

DEFAULT_TIMEOUT_SECONDS = 3.0
REQUIRED_TABLES = ("purchases", "meal_plan_phases", "phase_freeze_entries")


@dataclass
class CheckResult:
    """Represents a single dependency check outcome."""

    name: str
    ok: bool
    detail: str


def _format_duration(start: float) -> str:
    elapsed = perf_counter() - start
    if elapsed < 0.001:
        return "<1ms"
    return f"{int(elapsed * 1000)}ms"


def _format_exception(exc: Exception) -> str:
    message = str(exc).strip()
    if not message:
        message = exc.__class__.__name__
    return message.splitlines()[0]


def check_database(timeout: float = DEFAULT_TIMEOUT_SECONDS) -> CheckResult:
    start = perf_counter()
    try:
        with psycopg.connect(get_database_url(), connect_timeout=max(1, int(timeout))) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
    except Exception as exc:  # pragma: no cover - handled via result
        return CheckResult(name="DB", ok=False, detail=_format_exception(exc))
    return CheckResult(name="DB", ok=True, detail=_format_duration(start))


def check_schema(timeout: float = DEFAULT_TIMEOUT_SECONDS) -> CheckResult:
    try:
        with psycopg.connect(get_database_url(), connect_timeout=max(1, int(timeout))) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT table_name FROM information_schema.tables WHERE table_name = ANY(%s)",
                    (list(REQUIRED_TABLES),),
                )
                found = {row[0] for row in cur.fetchall()}
    except Exception as exc:  # pragma: no cover - handled via result
        return CheckResult(name="Schema", ok=False, detail=_format_exception(exc))

    missing = [table for table in REQUIRED_TABLES if table not in found]
    if missing:
        return CheckResult(name="Schema", ok=False, detail=f"missing {', '.join(missing)}")
    return CheckResult(name="Schema", ok=True, detail=f"{len(found)} tables")


def check_log_dir() -> CheckResult:
    log_dir = settings.log_path.parent
    if log_dir.exists() and not os.access(log_dir, os.W_OK):
        return CheckResult(name="Logs", ok=False, detail=f"{log_dir} not writable")
    return CheckResult(name="Logs", ok=True, detail=str(log_dir))


def run_status_checks(
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    checks: Sequence[Callable[[], CheckResult]] | None = None,
) -> List[CheckResult]:
    """Executes dependency checks, allowing override for testing."""

    if checks is None:
        checks = (
            lambda: check_database(timeout),
            lambda: check_schema(timeout),
            check_log_dir,
        )

    return [check() for check in checks]


def render_results(results: Iterable[CheckResult]) -> str:
    lines = []
    for result in results:
        status = "OK" if result.ok else "FAIL"
        lines.append(f"{result.name:<8} {status:<4} {result.detail}")
    return "\n".join(lines)
