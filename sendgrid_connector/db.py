"""PostgreSQL sink: connection pool, batched upserts, checkpoints, run tracking."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Generator, Optional, Sequence

import psycopg2
import psycopg2.extras
import psycopg2.pool

from sendgrid_connector.config import DatabaseConfig
from sendgrid_connector.resources import Entitlement, Grant, Resource
from sendgrid_connector.sink import Sink

logger = logging.getLogger("sendgrid.db")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sendgrid_resources (
    resource_type   text NOT NULL,
    resource_id     text NOT NULL,
    display_name    text NOT NULL,
    status          text,
    parent_type     text,
    parent_id       text,
    profile         jsonb NOT NULL DEFAULT '{}'::jsonb,
    created_at      timestamptz NOT NULL DEFAULT NOW(),
    updated_at      timestamptz NOT NULL DEFAULT NOW(),
    last_synced_at  timestamptz NOT NULL DEFAULT NOW(),
    PRIMARY KEY (resource_type, resource_id)
);
CREATE TABLE IF NOT EXISTS sendgrid_entitlements (
    entitlement_id  text PRIMARY KEY,
    resource_type   text NOT NULL,
    resource_id     text NOT NULL,
    slug            text NOT NULL,
    display_name    text NOT NULL,
    description     text,
    grantable_to    text[] NOT NULL DEFAULT '{}',
    created_at      timestamptz NOT NULL DEFAULT NOW(),
    updated_at      timestamptz NOT NULL DEFAULT NOW(),
    last_synced_at  timestamptz NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS sendgrid_grants (
    grant_id        text PRIMARY KEY,
    entitlement_id  text NOT NULL,
    principal_type  text NOT NULL,
    principal_id    text NOT NULL,
    created_at      timestamptz NOT NULL DEFAULT NOW(),
    updated_at      timestamptz NOT NULL DEFAULT NOW(),
    last_synced_at  timestamptz NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS sendgrid_sync_checkpoints (
    resource_type   text PRIMARY KEY,
    token           text NOT NULL,
    updated_at      timestamptz NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS sendgrid_sync_runs (
    id                  uuid PRIMARY KEY,
    status              text NOT NULL,
    started_at          timestamptz NOT NULL DEFAULT NOW(),
    finished_at         timestamptz,
    records_upserted    integer NOT NULL DEFAULT 0,
    error_message       text,
    error_detail        jsonb,
    run_metadata        jsonb NOT NULL DEFAULT '{}'::jsonb
);
"""


class Database(Sink):
    """Thin wrapper around a ThreadedConnectionPool implementing the sink."""

    def __init__(self, config: DatabaseConfig) -> None:
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=config.min_connections,
            maxconn=config.max_connections,
            dsn=config.url,
        )

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def connection(self) -> Generator:
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Generator:
        """Yield a cursor inside a commit-or-rollback transaction."""
        with self.connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def ensure_schema(self) -> None:
        with self.transaction() as cur:
            cur.execute(SCHEMA_SQL)
        logger.info("Database schema ready")

    def upsert_batch(
        self,
        cur,
        table: str,
        columns: list[str],
        rows: Sequence[tuple],
        conflict_columns: list[str],
        update_columns: list[str],
    ) -> int:
        """Bulk upsert using execute_values with ON CONFLICT DO UPDATE."""
        if not rows:
            return 0

        set_clauses = ", ".join(f"{c} = EXCLUDED.{c}" for c in update_columns)
        set_clauses += ", updated_at = NOW(), last_synced_at = NOW()"
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES %s "
            f"ON CONFLICT ({', '.join(conflict_columns)}) DO UPDATE SET {set_clauses}"
        )
        psycopg2.extras.execute_values(cur, sql, rows, page_size=500)
        return cur.rowcount

    # ------------------------------------------------------------------
    # Sink
    # ------------------------------------------------------------------

    def put_resources(self, resources: list[Resource]) -> int:
        rows = [
            (
                r.id.resource_type,
                r.id.resource,
                r.display_name,
                r.status,
                r.parent.resource_type if r.parent else None,
                r.parent.resource if r.parent else None,
                psycopg2.extras.Json(r.profile),
            )
            for r in resources
        ]
        with self.transaction() as cur:
            return self.upsert_batch(
                cur, "sendgrid_resources",
                ["resource_type", "resource_id", "display_name", "status",
                 "parent_type", "parent_id", "profile"],
                rows,
                ["resource_type", "resource_id"],
                ["display_name", "status", "parent_type", "parent_id", "profile"],
            )

    def put_entitlements(self, entitlements: list[Entitlement]) -> int:
        rows = [
            (
                e.id,
                e.resource.id.resource_type,
                e.resource.id.resource,
                e.slug,
                e.display_name,
                e.description,
                list(e.grantable_to),
            )
            for e in entitlements
        ]
        with self.transaction() as cur:
            return self.upsert_batch(
                cur, "sendgrid_entitlements",
                ["entitlement_id", "resource_type", "resource_id", "slug",
                 "display_name", "description", "grantable_to"],
                rows,
                ["entitlement_id"],
                ["display_name", "description", "grantable_to"],
            )

    def put_grants(self, grants: list[Grant]) -> int:
        # A page may repeat a grant; ON CONFLICT cannot touch a row twice.
        unique = {g.id: g for g in grants}
        rows = [
            (g.id, g.entitlement.id, g.principal.resource_type, g.principal.resource)
            for g in unique.values()
        ]
        with self.transaction() as cur:
            return self.upsert_batch(
                cur, "sendgrid_grants",
                ["grant_id", "entitlement_id", "principal_type", "principal_id"],
                rows,
                ["grant_id"],
                ["entitlement_id", "principal_type", "principal_id"],
            )

    def save_checkpoint(self, resource_type: str, token: str) -> None:
        with self.transaction() as cur:
            if not token:
                cur.execute(
                    "DELETE FROM sendgrid_sync_checkpoints WHERE resource_type = %s",
                    (resource_type,),
                )
                return
            cur.execute(
                """INSERT INTO sendgrid_sync_checkpoints (resource_type, token)
                   VALUES (%s, %s)
                   ON CONFLICT (resource_type)
                   DO UPDATE SET token = EXCLUDED.token, updated_at = NOW()""",
                (resource_type, token),
            )

    def load_checkpoint(self, resource_type: str) -> str:
        with self.transaction() as cur:
            cur.execute(
                "SELECT token FROM sendgrid_sync_checkpoints WHERE resource_type = %s",
                (resource_type,),
            )
            row = cur.fetchone()
        return row[0] if row else ""

    # ------------------------------------------------------------------
    # Sync run tracking
    # ------------------------------------------------------------------

    def record_run_start(self, metadata: Optional[dict] = None) -> str:
        """Insert a sendgrid_sync_runs row with status RUNNING. Returns the run id."""
        run_id = str(uuid.uuid4())
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO sendgrid_sync_runs (id, status, run_metadata)
                   VALUES (%s, 'RUNNING', %s)""",
                (run_id, psycopg2.extras.Json(metadata or {})),
            )
        logger.info("Sync run started", extra={"run_id": run_id})
        return run_id

    def record_run_end(
        self,
        run_id: str,
        status: str,
        records_upserted: int = 0,
        error_message: Optional[str] = None,
        error_detail: Optional[dict] = None,
    ) -> None:
        with self.transaction() as cur:
            cur.execute(
                """UPDATE sendgrid_sync_runs
                   SET status = %s,
                       finished_at = NOW(),
                       records_upserted = %s,
                       error_message = %s,
                       error_detail = %s
                   WHERE id = %s""",
                (
                    status,
                    records_upserted,
                    error_message,
                    psycopg2.extras.Json(error_detail) if error_detail else None,
                    run_id,
                ),
            )

    def get_recent_runs(self, limit: int = 10) -> list[dict[str, Any]]:
        with self.transaction() as cur:
            cur.execute(
                """SELECT id, status, started_at, finished_at,
                          records_upserted, error_message
                   FROM sendgrid_sync_runs
                   ORDER BY started_at DESC LIMIT %s""",
                (limit,),
            )
            cols = [d[0] for d in cur.description]
            return [dict(zip(cols, row)) for row in cur.fetchall()]
