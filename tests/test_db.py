"""Tests for the PostgreSQL sink. The connection pool is mocked."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from sendgrid_connector.config import DatabaseConfig
from sendgrid_connector.db import Database
from sendgrid_connector.resources import TEAMMATE, Grant, ResourceId, assignment_entitlement
from sendgrid_connector.syncers.scopes import scope_resource
from sendgrid_connector.syncers.teammates import teammate_resource

from tests.helpers import make_teammate


@pytest.fixture
def pool():
    with patch("psycopg2.pool.ThreadedConnectionPool") as pool_cls:
        yield pool_cls


@pytest.fixture
def cursor(pool):
    conn = pool.return_value.getconn.return_value
    cur = conn.cursor.return_value.__enter__.return_value
    cur.rowcount = 1
    return cur


@pytest.fixture
def db(pool):
    return Database(DatabaseConfig(url="postgresql://localhost/test", max_connections=2))


def _mail_send_entitlement():
    return assignment_entitlement(
        scope_resource("mail.send"), "assigned", TEAMMATE, "mail.send", "Assigned teammates",
    )


class TestDatabase:
    def test_pool_settings(self, db, pool) -> None:
        pool.assert_called_once_with(
            minconn=1, maxconn=2, dsn="postgresql://localhost/test",
        )

    def test_transaction_commits_and_returns_connection(self, db, pool, cursor) -> None:
        db.ensure_schema()
        conn = pool.return_value.getconn.return_value
        assert "sendgrid_resources" in cursor.execute.call_args.args[0]
        conn.commit.assert_called_once()
        pool.return_value.putconn.assert_called_once_with(conn)

    def test_transaction_rolls_back(self, db, pool, cursor) -> None:
        cursor.execute.side_effect = RuntimeError("boom")
        conn = pool.return_value.getconn.return_value
        with pytest.raises(RuntimeError):
            db.ensure_schema()
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.return_value.putconn.assert_called_once_with(conn)

    def test_put_resources_upserts(self, db, cursor) -> None:
        resource = teammate_resource(make_teammate("t1"))
        with patch("psycopg2.extras.execute_values") as execute_values:
            assert db.put_resources([resource]) == 1
        _, sql, rows = execute_values.call_args.args
        assert sql.startswith("INSERT INTO sendgrid_resources")
        assert "ON CONFLICT (resource_type, resource_id) DO UPDATE" in sql
        assert rows[0][:3] == ("teammate", "t1", "t1")

    def test_empty_batch_writes_nothing(self, db, pool) -> None:
        with patch("psycopg2.extras.execute_values") as execute_values:
            assert db.put_entitlements([]) == 0
        execute_values.assert_not_called()

    def test_put_grants_deduplicates(self, db, cursor) -> None:
        grant = Grant(_mail_send_entitlement(), ResourceId("teammate", "t1"))
        with patch("psycopg2.extras.execute_values") as execute_values:
            db.put_grants([grant, grant])
        rows = execute_values.call_args.args[2]
        assert rows == [("scope:mail.send:assigned:teammate:t1", "scope:mail.send:assigned",
                         "teammate", "t1")]

    def test_save_and_clear_checkpoint(self, db, cursor) -> None:
        db.save_checkpoint("teammate", "500")
        sql, params = cursor.execute.call_args.args
        assert "INSERT INTO sendgrid_sync_checkpoints" in sql
        assert params == ("teammate", "500")

        db.save_checkpoint("teammate", "")
        sql, params = cursor.execute.call_args.args
        assert sql.startswith("DELETE FROM sendgrid_sync_checkpoints")
        assert params == ("teammate",)

    def test_load_checkpoint(self, db, cursor) -> None:
        cursor.fetchone.return_value = ("1000",)
        assert db.load_checkpoint("teammate") == "1000"
        cursor.fetchone.return_value = None
        assert db.load_checkpoint("subuser") == ""

    def test_run_tracking(self, db, cursor) -> None:
        run_id = db.record_run_start(metadata={"resume": True})
        assert len(run_id) == 36
        db.record_run_end(run_id, "SUCCESS", records_upserted=12)
        params = cursor.execute.call_args.args[1]
        assert params[0] == "SUCCESS"
        assert params[1] == 12
        assert params[-1] == run_id

    def test_recent_runs(self, db, cursor) -> None:
        cursor.description = [("id",), ("status",)]
        cursor.fetchall.return_value = [("r1", "SUCCESS")]
        assert db.get_recent_runs(limit=1) == [{"id": "r1", "status": "SUCCESS"}]

    def test_close(self, db, pool) -> None:
        db.close()
        pool.return_value.closeall.assert_called_once()
