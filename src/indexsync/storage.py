from __future__ import annotations

import json
import re
from typing import Any, Iterable

from .db import DBConn, connect_db
from .models import QueueItem, RunSelection, Site, TypeBinding
from .utils import json_dumps, utc_now_iso

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_QUEUE_COLUMNS = """
    id, site_id, root_page_id, item_type, item_uid, indexing_configuration,
    changed, indexed
"""


class StorageError(RuntimeError):
    pass


def init_db(path: str) -> DBConn:
    return connect_db(path)


def clear_queue(conn: Any, site: Site, type_name: str) -> int:
    cursor = conn.execute(
        """
        DELETE FROM index_queue
        WHERE root_page_id = ? AND indexing_configuration = ?
        """,
        (site.root_page_id, type_name),
    )
    conn.commit()
    return cursor.rowcount


def populate_queue(conn: Any, site: Site, binding: TypeBinding) -> int:
    """Insert one queue row per source record of ``binding.table`` below the site root.

    Source tables need ``uid``, ``root_page_id`` and ``changed`` columns;
    ``deleted``/``hidden`` flags are honoured when present.
    """
    table = binding.table
    if not _IDENTIFIER.match(table):
        raise StorageError(f"invalid source table name {table!r}")
    if not _table_exists(conn, table):
        raise StorageError(f"source table {table} does not exist")
    columns = _table_columns(conn, table)
    missing = {"uid", "root_page_id", "changed"} - columns
    if missing:
        raise StorageError(
            f"source table {table} lacks required columns: {', '.join(sorted(missing))}"
        )

    clauses = ["root_page_id = ?"]
    if "deleted" in columns:
        clauses.append("deleted = 0")
    if "hidden" in columns:
        clauses.append("hidden = 0")
    if binding.additional_where:
        clauses.append(f"({binding.additional_where})")

    try:
        with conn.transaction():
            cursor = conn.execute(
                f"""
                INSERT OR IGNORE INTO index_queue
                    (site_id, root_page_id, item_type, item_uid, indexing_configuration,
                     changed, indexed, created_at)
                SELECT ?, root_page_id, ?, uid, ?, changed, 0, ?
                FROM {table}
                WHERE {" AND ".join(clauses)}
                ORDER BY uid ASC
                """,
                (site.identifier, table, binding.name, utc_now_iso(), site.root_page_id),
            )
    except Exception as exc:  # noqa: BLE001
        raise StorageError(f"populating queue from {table} failed: {exc}") from exc
    return cursor.rowcount


def count_queue(conn: Any, site: Site, type_name: str) -> int:
    cursor = conn.execute(
        """
        SELECT COUNT(*) FROM index_queue
        WHERE root_page_id = ? AND indexing_configuration = ?
        """,
        (site.root_page_id, type_name),
    )
    row = cursor.fetchone()
    return int(row[0]) if row else 0


def fetch_pending(conn: Any, selection: RunSelection) -> list[QueueItem]:
    constraints: list[str] = []
    params: list[object] = []
    for site, type_name in selection.pairs():
        constraints.append("(root_page_id = ? AND indexing_configuration = ?)")
        params.extend([site.root_page_id, type_name])
    if not constraints:
        return []
    cursor = conn.execute(
        f"""
        SELECT {_QUEUE_COLUMNS}
        FROM index_queue
        WHERE ({" OR ".join(constraints)})
          AND (indexed = 0 OR changed > indexed)
        ORDER BY id ASC
        """,
        tuple(params),
    )
    return [_row_to_item(row) for row in cursor.fetchall()]


def get_queue_item(conn: Any, item_id: int) -> QueueItem | None:
    cursor = conn.execute(
        f"SELECT {_QUEUE_COLUMNS} FROM index_queue WHERE id = ?",
        (item_id,),
    )
    row = cursor.fetchone()
    return _row_to_item(row) if row else None


def mark_indexed(conn: Any, item: QueueItem, timestamp: int) -> bool:
    cursor = conn.execute(
        """
        UPDATE index_queue
        SET indexed = ?
        WHERE id = ?
        """,
        (timestamp, item.id),
    )
    conn.commit()
    return cursor.rowcount == 1


def set_forced_change_time(conn: Any, item: QueueItem, timestamp: int) -> bool:
    cursor = conn.execute(
        "UPDATE index_queue SET changed = ? WHERE id = ?",
        (timestamp, item.id),
    )
    conn.commit()
    return cursor.rowcount == 1


def queue_statistics(conn: Any, site_ids: Iterable[str] | None = None) -> list[dict[str, object]]:
    params: list[object] = []
    where = ""
    site_ids = list(site_ids or [])
    if site_ids:
        placeholders = ",".join(["?"] * len(site_ids))
        where = f"WHERE site_id IN ({placeholders})"
        params.extend(site_ids)
    cursor = conn.execute(
        f"""
        SELECT site_id, indexing_configuration,
               COUNT(*),
               SUM(CASE WHEN indexed = 0 OR changed > indexed THEN 1 ELSE 0 END)
        FROM index_queue
        {where}
        GROUP BY site_id, indexing_configuration
        ORDER BY site_id, indexing_configuration
        """,
        tuple(params),
    )
    stats = []
    for site_id, type_name, total, pending in cursor.fetchall():
        total = int(total or 0)
        pending = int(pending or 0)
        stats.append(
            {
                "site_id": site_id,
                "type": type_name,
                "total": total,
                "pending": pending,
                "indexed": total - pending,
            }
        )
    return stats


def get_setting(conn: Any, key: str, default: object) -> object:
    cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
    row = cursor.fetchone()
    if not row:
        return default
    try:
        return json.loads(row[0])
    except json.JSONDecodeError:
        return default


def set_setting(conn: Any, key: str, value: object) -> None:
    payload = json_dumps(value)
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO settings (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (key, payload, now),
    )
    conn.commit()


def _table_exists(conn: Any, table: str) -> bool:
    if getattr(conn, "backend", "sqlite") == "postgres":
        cursor = conn.execute("SELECT to_regclass(?)", (f"public.{table}",))
        row = cursor.fetchone()
        return bool(row and row[0])
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name = ?", (table,)
    )
    return cursor.fetchone() is not None


def _table_columns(conn: Any, table: str) -> set[str]:
    if getattr(conn, "backend", "sqlite") == "postgres":
        cursor = conn.execute(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema = 'public' AND table_name = ?
            """,
            (table,),
        )
        return {row[0] for row in cursor.fetchall()}
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _row_to_item(row: tuple) -> QueueItem:
    (
        item_id,
        site_id,
        root_page_id,
        item_type,
        item_uid,
        indexing_configuration,
        changed,
        indexed,
    ) = row
    return QueueItem(
        id=int(item_id),
        site_id=site_id,
        root_page_id=int(root_page_id),
        item_type=item_type,
        item_uid=int(item_uid),
        indexing_configuration=indexing_configuration,
        changed=int(changed or 0),
        indexed=int(indexed or 0),
    )
