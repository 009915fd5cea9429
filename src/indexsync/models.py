from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator


@dataclass(frozen=True)
class SolrEndpoint:
    scheme: str
    host: str
    port: int
    path: str
    core: str
    timeout_seconds: int | None = None

    @property
    def base_url(self) -> str:
        path = "/" + self.path.strip("/") if self.path.strip("/") else ""
        return f"{self.scheme}://{self.host}:{self.port}{path}/{self.core}"


@dataclass(frozen=True)
class TypeBinding:
    name: str
    table: str
    indexer: str
    indexer_config: dict[str, object]
    additional_where: str | None
    enabled: bool


@dataclass(frozen=True)
class Site:
    identifier: str
    domain: str
    root_page_id: int
    site_hash: str
    bindings: dict[str, TypeBinding]
    endpoints: tuple[SolrEndpoint, ...]

    @property
    def enabled_types(self) -> tuple[str, ...]:
        return tuple(name for name, binding in self.bindings.items() if binding.enabled)

    def is_type_enabled(self, type_name: str) -> bool:
        binding = self.bindings.get(type_name)
        return bool(binding and binding.enabled)

    def binding(self, type_name: str) -> TypeBinding | None:
        return self.bindings.get(type_name)

    def indexer_binding(self, type_name: str) -> tuple[str, dict[str, object]] | None:
        binding = self.bindings.get(type_name)
        if binding is None:
            return None
        return binding.indexer, binding.indexer_config

    def search_endpoints(self) -> tuple[SolrEndpoint, ...]:
        return self.endpoints

    def scope_hash(self) -> str:
        return self.site_hash


@dataclass
class QueueItem:
    id: int
    site_id: str
    root_page_id: int
    item_type: str
    item_uid: int
    indexing_configuration: str
    changed: int
    indexed: int


@dataclass(frozen=True)
class RunSelection:
    sites: tuple[Site, ...]
    types: tuple[str, ...]

    def types_for(self, site: Site) -> list[str]:
        return [type_name for type_name in self.types if site.is_type_enabled(type_name)]

    def pairs(self) -> Iterator[tuple[Site, str]]:
        for site in self.sites:
            for type_name in self.types_for(site):
                yield site, type_name


@dataclass(frozen=True)
class ItemFailure:
    item_id: int
    site_id: str
    type_name: str
    item_uid: int
    message: str
    trace: list[str]

    @property
    def label(self) -> str:
        return f"{self.site_id}:{self.type_name}:{self.item_uid}"


@dataclass
class RunOutcome:
    total: int = 0
    attempted: int = 0
    succeeded: int = 0
    skipped: int = 0
    failures: list[ItemFailure] = field(default_factory=list)
    aborted: bool = False

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass(frozen=True)
class PairCount:
    site_id: str
    type_name: str
    count: int


@dataclass(frozen=True)
class InitializationResult:
    pairs: list[PairCount]

    @property
    def total(self) -> int:
        return sum(pair.count for pair in self.pairs)
