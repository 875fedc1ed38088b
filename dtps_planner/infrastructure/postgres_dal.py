# dtps_planner/infrastructure/postgres_dal.py
"""
PostgreSQL implementation of the planning repository.

Purchases, phases, freeze entries and per-day content live in three tables.
``transaction()`` pins one pooled connection for the current thread so every
read and write issued by a command shares the same database transaction.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from dtps_planner.config import settings
from dtps_planner.domain.entities import Phase, Purchase
from dtps_planner.domain.repositories import PlanningRepository
from dtps_planner.infrastructure import log_utils
from dtps_planner.infrastructure.db_conn import get_database_url
from dtps_planner.infrastructure.mappers import PhaseMapper

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS purchases (
    purchase_id          TEXT PRIMARY KEY,
    client_id            TEXT NOT NULL,
    total_purchased_days INTEGER NOT NULL CHECK (total_purchased_days > 0),
    days_used            INTEGER NOT NULL DEFAULT 0
                         CHECK (days_used >= 0 AND days_used <= total_purchased_days),
    expected_start_date  DATE,
    expected_end_date    DATE,
    status               TEXT NOT NULL DEFAULT 'active',
    allowed_freeze_days  INTEGER,
    created_at           TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS meal_plan_phases (
    phase_id               TEXT PRIMARY KEY,
    purchase_id            TEXT NOT NULL REFERENCES purchases (purchase_id),
    client_id              TEXT NOT NULL,
    name                   TEXT,
    start_date             DATE NOT NULL,
    end_date               DATE NOT NULL,
    original_duration_days INTEGER NOT NULL CHECK (original_duration_days > 0),
    status                 TEXT NOT NULL DEFAULT 'active',
    total_pause_days       INTEGER NOT NULL DEFAULT 0,
    parent_purchase_id     TEXT,
    meals                  JSONB NOT NULL DEFAULT '{}'::jsonb,
    updated_at             TIMESTAMPTZ NOT NULL DEFAULT now(),
    CHECK (end_date >= start_date)
);

CREATE INDEX IF NOT EXISTS ix_meal_plan_phases_client
    ON meal_plan_phases (client_id, start_date);

CREATE TABLE IF NOT EXISTS phase_freeze_entries (
    phase_id      TEXT NOT NULL REFERENCES meal_plan_phases (phase_id) ON DELETE CASCADE,
    frozen_date   DATE NOT NULL,
    appended_date DATE NOT NULL,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
    position      INTEGER NOT NULL,
    PRIMARY KEY (phase_id, frozen_date)
);
"""

# --- Connection Pool Management ---
_pool: ConnectionPool | None = None


def _create_pool() -> ConnectionPool:
    db_url = get_database_url()
    return ConnectionPool(
        conninfo=db_url,
        min_size=settings.DB_POOL_MIN_SIZE,
        max_size=settings.DB_POOL_MAX_SIZE,
    )


def get_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        _pool = _create_pool()
    return _pool


# --- Data Access Layer ---
class PostgresDal(PlanningRepository):
    """PostgreSQL implementation of the planning repository."""

    def __init__(self, pool: Optional[ConnectionPool] = None, mapper: Optional[PhaseMapper] = None):
        self.pool = pool or get_pool()
        self.mapper = mapper or PhaseMapper()
        self._local = threading.local()

    def _pinned(self):
        return getattr(self._local, "conn", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed calls in one transaction; nested calls join the outer one."""
        if self._pinned() is not None:
            yield
            return

        with self.pool.connection() as conn:
            with conn.transaction():
                self._local.conn = conn
                try:
                    yield
                finally:
                    self._local.conn = None

    @contextmanager
    def _get_cursor(self):
        conn = self._pinned()
        if conn is not None:
            with conn.cursor(row_factory=dict_row) as cur:
                yield cur
            return

        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                yield cur

    def connection(self):
        """Provide a context manager for a pooled database connection."""
        return self.pool.connection()

    def close(self) -> None:
        if self.pool and not self.pool.closed:
            self.pool.close()
            log_utils.info("Database connection pool closed.")

    def ensure_schema(self) -> None:
        with self._get_cursor() as cur:
            cur.execute(SCHEMA_SQL)
        log_utils.info("Planner schema verified.")

    # ----------------------------------------------
    # --- Purchases ---
    # ----------------------------------------------
    def get_purchase(self, purchase_id: str) -> Optional[Purchase]:
        with self._get_cursor() as cur:
            cur.execute("SELECT * FROM purchases WHERE purchase_id = %s", (purchase_id,))
            row = cur.fetchone()
        return self.mapper.purchase_from_row(row) if row else None

    def get_active_purchase(self, client_id: str) -> Optional[Purchase]:
        with self._get_cursor() as cur:
            cur.execute(
                """
                SELECT * FROM purchases
                WHERE client_id = %s AND status = 'active'
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (client_id,),
            )
            row = cur.fetchone()
        return self.mapper.purchase_from_row(row) if row else None

    def save_purchase(self, purchase: Purchase) -> None:
        row = self.mapper.purchase_to_row(purchase)
        with self._get_cursor() as cur:
            cur.execute(
                """
                INSERT INTO purchases (
                    purchase_id, client_id, total_purchased_days, days_used,
                    expected_start_date, expected_end_date, status, allowed_freeze_days
                )
                VALUES (
                    %(purchase_id)s, %(client_id)s, %(total_purchased_days)s, %(days_used)s,
                    %(expected_start_date)s, %(expected_end_date)s, %(status)s, %(allowed_freeze_days)s
                )
                ON CONFLICT (purchase_id) DO UPDATE SET
                    client_id = EXCLUDED.client_id,
                    total_purchased_days = EXCLUDED.total_purchased_days,
                    days_used = EXCLUDED.days_used,
                    expected_start_date = EXCLUDED.expected_start_date,
                    expected_end_date = EXCLUDED.expected_end_date,
                    status = EXCLUDED.status,
                    allowed_freeze_days = EXCLUDED.allowed_freeze_days
                """,
                row,
            )

    # ----------------------------------------------
    # --- Phases ---
    # ----------------------------------------------
    def _freeze_rows(self, cur, phase_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {phase_id: [] for phase_id in phase_ids}
        if not phase_ids:
            return grouped
        cur.execute(
            """
            SELECT phase_id, frozen_date, appended_date, created_at, position
            FROM phase_freeze_entries
            WHERE phase_id = ANY(%s)
            ORDER BY phase_id, position
            """,
            (phase_ids,),
        )
        for row in cur.fetchall():
            grouped.setdefault(row["phase_id"], []).append(row)
        return grouped

    def get_phase(self, phase_id: str) -> Optional[Phase]:
        with self._get_cursor() as cur:
            cur.execute("SELECT * FROM meal_plan_phases WHERE phase_id = %s", (phase_id,))
            row = cur.fetchone()
            if row is None:
                return None
            freeze_rows = self._freeze_rows(cur, [phase_id])
        return self.mapper.phase_from_rows(row, freeze_rows.get(phase_id, []))

    def list_client_phases(self, client_id: str) -> List[Phase]:
        with self._get_cursor() as cur:
            cur.execute(
                """
                SELECT * FROM meal_plan_phases
                WHERE client_id = %s
                ORDER BY start_date, end_date, phase_id
                """,
                (client_id,),
            )
            rows = cur.fetchall()
            freeze_rows = self._freeze_rows(cur, [row["phase_id"] for row in rows])
        return [
            self.mapper.phase_from_rows(row, freeze_rows.get(row["phase_id"], []))
            for row in rows
        ]

    def save_phase(self, phase: Phase) -> None:
        row = self.mapper.phase_to_row(phase)
        row["meals"] = Json(row["meals"])
        with self.transaction():
            with self._get_cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO meal_plan_phases (
                        phase_id, purchase_id, client_id, name, start_date, end_date,
                        original_duration_days, status, total_pause_days,
                        parent_purchase_id, meals
                    )
                    VALUES (
                        %(phase_id)s, %(purchase_id)s, %(client_id)s, %(name)s,
                        %(start_date)s, %(end_date)s, %(original_duration_days)s,
                        %(status)s, %(total_pause_days)s, %(parent_purchase_id)s, %(meals)s
                    )
                    ON CONFLICT (phase_id) DO UPDATE SET
                        name = EXCLUDED.name,
                        start_date = EXCLUDED.start_date,
                        end_date = EXCLUDED.end_date,
                        status = EXCLUDED.status,
                        total_pause_days = EXCLUDED.total_pause_days,
                        parent_purchase_id = EXCLUDED.parent_purchase_id,
                        meals = EXCLUDED.meals,
                        updated_at = now()
                    """,
                    row,
                )
                cur.execute(
                    "DELETE FROM phase_freeze_entries WHERE phase_id = %s",
                    (phase.phase_id,),
                )
                freeze_rows = self.mapper.freeze_entries_to_rows(phase)
                if freeze_rows:
                    cur.executemany(
                        """
                        INSERT INTO phase_freeze_entries (
                            phase_id, frozen_date, appended_date, created_at, position
                        )
                        VALUES (
                            %(phase_id)s, %(frozen_date)s, %(appended_date)s,
                            %(created_at)s, %(position)s
                        )
                        """,
                        freeze_rows,
                    )

    def delete_phase(self, phase_id: str) -> None:
        with self._get_cursor() as cur:
            cur.execute("DELETE FROM meal_plan_phases WHERE phase_id = %s", (phase_id,))

    # ----------------------------------------------
    # --- Health ---
    # ----------------------------------------------
    def ping(self) -> bool:
        with self._get_cursor() as cur:
            cur.execute("SELECT 1 AS ok")
            row = cur.fetchone()
        return bool(row and row.get("ok") == 1)
