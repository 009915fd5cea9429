from __future__ import annotations

import logging

from .utils import utc_now_iso


def apply_migrations_pg(conn) -> None:
    logger = logging.getLogger("indexsync.migrations")
    conn.execute("BEGIN")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    applied = {
        row[0]
        for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
    }
    if "pg_bootstrap_001" in applied:
        conn.commit()
        return
    try:
        _bootstrap_schema(conn)
        conn.execute(
            "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
            ("pg_bootstrap_001", utc_now_iso()),
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    logger.info("migration_applied version=pg_bootstrap_001")


def _bootstrap_schema(conn) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS index_queue (
            id BIGSERIAL PRIMARY KEY,
            site_id TEXT NOT NULL,
            root_page_id INTEGER NOT NULL,
            item_type TEXT NOT NULL,
            item_uid BIGINT NOT NULL,
            indexing_configuration TEXT NOT NULL,
            changed BIGINT NOT NULL DEFAULT 0,
            indexed BIGINT NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            UNIQUE(root_page_id, indexing_configuration, item_uid)
        )
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_index_queue_scope
        ON index_queue(root_page_id, indexing_configuration)
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
