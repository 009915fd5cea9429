from __future__ import annotations

import json

import pytest

from indexsync.config import SolrConfig
from indexsync.models import Site, SolrEndpoint, TypeBinding
from indexsync.storage import init_db


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSolr:
    """Stands in for ``urlopen``; records every update request."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, object]] = []

    def __call__(self, request, timeout=None):
        payload = json.loads(request.data.decode("utf-8")) if request.data else None
        self.requests.append((request.full_url, payload))
        return FakeResponse(b'{"responseHeader": {"status": 0}}')

    def documents(self) -> list[dict]:
        docs = []
        for _, payload in self.requests:
            if isinstance(payload, list):
                docs.extend(payload)
        return docs


@pytest.fixture
def fake_solr(monkeypatch):
    solr = FakeSolr()
    monkeypatch.setattr("indexsync.solr.urlopen", solr)
    return solr


@pytest.fixture
def solr_config():
    return SolrConfig(timeout_seconds=5, max_retries=0, backoff_seconds=0.0, user_agent="test")


@pytest.fixture
def conn(tmp_path):
    connection = init_db(str(tmp_path / "state.sqlite3"))
    yield connection
    connection.close()


@pytest.fixture
def make_site():
    def _make(
        identifier: str = "main",
        root_page_id: int = 1,
        types=("news",),
        domain: str | None = None,
        indexer: str = "record",
        indexer_config: dict | None = None,
        disabled=(),
        endpoints: int = 1,
        additional_where: str | None = None,
    ) -> Site:
        bindings = {
            name: TypeBinding(
                name=name,
                table=name,
                indexer=indexer,
                indexer_config=dict(indexer_config or {}),
                additional_where=additional_where,
                enabled=name not in disabled,
            )
            for name in types
        }
        return Site(
            identifier=identifier,
            domain=domain or f"{identifier}.example.org",
            root_page_id=root_page_id,
            site_hash=f"hash-{identifier}",
            bindings=bindings,
            endpoints=tuple(
                SolrEndpoint(
                    scheme="http",
                    host="solr",
                    port=8983,
                    path="/solr",
                    core=f"{identifier}_core{index}",
                )
                for index in range(endpoints)
            ),
        )

    return _make


@pytest.fixture
def source_table(conn):
    def _create(table: str, rows) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                uid INTEGER PRIMARY KEY,
                root_page_id INTEGER NOT NULL,
                changed INTEGER NOT NULL DEFAULT 0,
                deleted INTEGER NOT NULL DEFAULT 0,
                hidden INTEGER NOT NULL DEFAULT 0,
                title TEXT
            )
            """
        )
        for row in rows:
            conn.execute(
                f"""
                INSERT INTO {table} (uid, root_page_id, changed, deleted, hidden, title)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    row["uid"],
                    row.get("root_page_id", 1),
                    row.get("changed", 100),
                    row.get("deleted", 0),
                    row.get("hidden", 0),
                    row.get("title", f"{table} {row['uid']}"),
                ),
            )
        conn.commit()

    return _create
