from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..config import SolrConfig
from ..context import HostContext, RuntimeCaches
from ..models import QueueItem, Site, TypeBinding


@dataclass(frozen=True)
class IndexerEnv:
    conn: Any
    site: Site
    binding: TypeBinding
    solr: SolrConfig
    caches: RuntimeCaches
    type_field: str


class Indexer(ABC):
    """Turns one queue item into search documents.

    ``index`` returns True when the item was sent to the search engine and
    False when it legitimately no longer qualifies. Implementations may raise
    on failure and may advance ``item.changed`` to report the change time
    they observed.
    """

    def __init__(self, config: dict[str, Any], env: IndexerEnv) -> None:
        self.config = config
        self.env = env

    @abstractmethod
    def index(self, item: QueueItem, host: HostContext) -> bool:
        ...
