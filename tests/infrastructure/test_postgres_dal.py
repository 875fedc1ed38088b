import unittest
from datetime import date, datetime
from unittest.mock import MagicMock, patch

from psycopg.types.json import Json

from dtps_planner.domain.entities import FreezeEntry
from dtps_planner.infrastructure.postgres_dal import SCHEMA_SQL, PostgresDal
from tests.builders import make_phase


def _mock_pool():
    mock_pool = MagicMock()
    mock_conn = MagicMock()
    mock_cur = MagicMock()
    mock_pool.connection.return_value.__enter__.return_value = mock_conn
    mock_conn.cursor.return_value.__enter__.return_value = mock_cur
    return mock_pool, mock_conn, mock_cur


class TestPostgresDal(unittest.TestCase):

    @patch("dtps_planner.infrastructure.postgres_dal.get_pool")
    def test_uses_shared_pool_by_default(self, mock_get_pool):
        mock_pool, _conn, _cur = _mock_pool()
        mock_get_pool.return_value = mock_pool

        dal = PostgresDal()

        mock_get_pool.assert_called_once()
        self.assertIs(dal.pool, mock_pool)

    def test_get_phase_loads_freeze_entries(self):
        mock_pool, _conn, mock_cur = _mock_pool()
        mock_cur.fetchone.return_value = {
            "phase_id": "a",
            "purchase_id": "purchase-1",
            "client_id": "client-1",
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 1, 11),
            "original_duration_days": 10,
            "status": "active",
            "meals": None,
        }
        mock_cur.fetchall.return_value = [
            {
                "phase_id": "a",
                "frozen_date": date(2024, 1, 5),
                "appended_date": date(2024, 1, 11),
                "created_at": datetime(2024, 1, 1, 8, 0),
                "position": 0,
            }
        ]

        phase = PostgresDal(pool=mock_pool).get_phase("a")

        self.assertEqual(phase.end_date, date(2024, 1, 11))
        self.assertEqual(phase.frozen_dates(), {date(2024, 1, 5)})
        self.assertEqual(mock_cur.execute.call_count, 2)
        _sql, params = mock_cur.execute.call_args_list[1][0]
        self.assertEqual(params, (["a"],))

    def test_get_phase_missing_returns_none(self):
        mock_pool, _conn, mock_cur = _mock_pool()
        mock_cur.fetchone.return_value = None

        self.assertIsNone(PostgresDal(pool=mock_pool).get_phase("nope"))
        mock_cur.execute.assert_called_once()

    def test_save_phase_rewrites_freeze_entries(self):
        mock_pool, mock_conn, mock_cur = _mock_pool()
        phase = make_phase("a", date(2024, 1, 1), 10, meals={date(2024, 1, 1): {"lunch": "soup"}})
        phase.end_date = date(2024, 1, 11)
        phase.freeze_entries.append(FreezeEntry(date(2024, 1, 4), date(2024, 1, 11)))

        PostgresDal(pool=mock_pool).save_phase(phase)

        mock_conn.transaction.assert_called_once()
        upsert_sql, row = mock_cur.execute.call_args_list[0][0]
        self.assertIn("ON CONFLICT (phase_id)", upsert_sql)
        self.assertIsInstance(row["meals"], Json)
        delete_sql, params = mock_cur.execute.call_args_list[1][0]
        self.assertIn("DELETE FROM phase_freeze_entries", delete_sql)
        self.assertEqual(params, ("a",))
        _insert_sql, rows = mock_cur.executemany.call_args[0]
        self.assertEqual([r["position"] for r in rows], [0])

    def test_transaction_pins_one_connection(self):
        mock_pool, mock_conn, _cur = _mock_pool()
        dal = PostgresDal(pool=mock_pool)

        with dal.transaction():
            dal.save_phase(make_phase("a", date(2024, 1, 1), 5))
            dal.save_phase(make_phase("b", date(2024, 1, 6), 5))
            dal.delete_phase("c")

        mock_pool.connection.assert_called_once()
        mock_conn.transaction.assert_called_once()
        self.assertIsNone(dal._pinned())

    def test_ensure_schema_and_ping(self):
        mock_pool, _conn, mock_cur = _mock_pool()
        mock_cur.fetchone.return_value = {"ok": 1}
        dal = PostgresDal(pool=mock_pool)

        dal.ensure_schema()
        self.assertTrue(dal.ping())

        mock_cur.execute.assert_any_call(SCHEMA_SQL)

    def test_close_closes_open_pool(self):
        mock_pool, _conn, _cur = _mock_pool()
        mock_pool.closed = False

        PostgresDal(pool=mock_pool).close()

        mock_pool.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
