from __future__ import annotations

import importlib
from typing import Any, Callable

from .base import Indexer, IndexerEnv

IndexerFactory = Callable[[dict[str, Any], IndexerEnv], Any]

_REGISTRY: dict[str, IndexerFactory] = {}


class IndexerResolutionError(LookupError):
    pass


def register_indexer(name: str, factory: IndexerFactory) -> IndexerFactory:
    _REGISTRY[name] = factory
    return factory


def unregister_indexer(name: str) -> None:
    _REGISTRY.pop(name, None)


def registered_indexers() -> list[str]:
    return sorted(_REGISTRY)


def create_indexer(indexer_id: str, config: dict[str, Any], env: IndexerEnv) -> Indexer:
    """Build the indexer bound to ``indexer_id``.

    Ids are looked up in the registry first; ``package.module:Name`` paths are
    imported. Anything that does not produce an :class:`Indexer` is rejected.
    """
    factory = _REGISTRY.get(indexer_id) or _import_factory(indexer_id, env)
    indexer = factory(config, env)
    if not isinstance(indexer, Indexer):
        raise IndexerResolutionError(
            f"Indexer {indexer_id} of type {env.binding.name} is not a valid indexer. "
            f"Must be a subclass of {Indexer.__module__}.{Indexer.__name__}"
        )
    return indexer


def _import_factory(indexer_id: str, env: IndexerEnv) -> IndexerFactory:
    module_name, sep, attr = indexer_id.partition(":")
    if not sep or not module_name or not attr:
        raise IndexerResolutionError(
            f"Unknown indexer {indexer_id} for type {env.binding.name}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise IndexerResolutionError(f"Cannot import indexer module {module_name}: {exc}") from exc
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise IndexerResolutionError(f"Indexer {indexer_id} not found")
    return factory
