from __future__ import annotations

import logging
from typing import Any

from ..context import HostContext
from ..models import QueueItem
from ..solr import connections_for_site
from ..storage import StorageError
from ..utils import log_event
from .base import Indexer, IndexerEnv

# absolute URLs by path; only valid for the host they were built under
_URL_CACHE: dict[str, str] = {}


class RecordIndexer(Indexer):
    """Index a source table row as one document.

    Config keys:
      ``fields``: mapping of search field -> source column
      ``url``: path pattern formatted with the row, e.g. ``/news/{uid}``
    """

    def __init__(self, config: dict[str, Any], env: IndexerEnv) -> None:
        super().__init__(config, env)
        self.logger = logging.getLogger("indexsync.indexers.record")
        self._urls = env.caches.register(_URL_CACHE)

    def index(self, item: QueueItem, host: HostContext) -> bool:
        row = self._load_row(item)
        if row is None:
            log_event(
                self.logger,
                logging.DEBUG,
                "record_skipped",
                table=item.item_type,
                uid=item.item_uid,
            )
            return False
        document = self.build_document(item, row, host)
        for connection in connections_for_site(self.env.site, self.env.solr):
            connection.add_documents([document])
        changed = int(row.get("changed") or 0)
        if changed > item.changed:
            item.changed = changed
        return True

    def build_document(
        self, item: QueueItem, row: dict[str, Any], host: HostContext
    ) -> dict[str, Any]:
        site = self.env.site
        document: dict[str, Any] = {
            "id": f"{site.scope_hash()}/{item.item_type}/{item.item_uid}",
            "siteHash": site.scope_hash(),
            "site": site.domain,
            "type": item.item_type,
            self.env.type_field: item.indexing_configuration,
            "uid": item.item_uid,
            "root": item.root_page_id,
            "changed": int(row.get("changed") or 0),
        }
        for field, column in (self.config.get("fields") or {}).items():
            if column in row:
                document[field] = row[column]
        pattern = self.config.get("url")
        if pattern:
            document["url"] = self._absolute_url(str(pattern).format(**row), host)
        return document

    def _absolute_url(self, path: str, host: HostContext) -> str:
        if path not in self._urls:
            self._urls[path] = host.absolute_url(path)
        return self._urls[path]

    def _load_row(self, item: QueueItem) -> dict[str, Any] | None:
        table = self.env.binding.table
        if table != item.item_type:
            raise StorageError(
                f"queue item {item.id} belongs to table {item.item_type}, binding uses {table}"
            )
        cursor = self.env.conn.execute(f"SELECT * FROM {table} WHERE uid = ?", (item.item_uid,))
        row = cursor.fetchone()
        if row is None:
            return None
        columns = [description[0] for description in cursor.description]
        record = dict(zip(columns, row))
        if record.get("deleted") or record.get("hidden"):
            return None
        return record


def record_indexer_factory(config: dict[str, Any], env: IndexerEnv) -> RecordIndexer:
    return RecordIndexer(config, env)
