from __future__ import annotations

import logging
from typing import Any, Callable

from .config import SolrConfig
from .context import HostContext, RuntimeCaches
from .indexers import IndexerEnv, IndexerResolutionError, create_indexer
from .models import ItemFailure, QueueItem, RunOutcome, RunSelection, Site
from .report import NullProgress
from .storage import fetch_pending, mark_indexed, set_forced_change_time
from .utils import format_trace, log_event, unix_now


class ItemIndexError(RuntimeError):
    def __init__(self, failure: ItemFailure, outcome: RunOutcome) -> None:
        super().__init__(f"Error when indexing {failure.label}: {failure.message}")
        self.failure = failure
        self.outcome = outcome


def drain_queue(
    conn: Any,
    selection: RunSelection,
    solr_config: SolrConfig,
    type_field: str,
    ignore_errors: bool = False,
    progress=None,
    on_failure: Callable[[ItemFailure], None] | None = None,
    host: HostContext | None = None,
    caches: RuntimeCaches | None = None,
    clock: Callable[[], int] = unix_now,
    project_root: str | None = None,
    logger: logging.Logger | None = None,
) -> RunOutcome:
    """Index every pending queue item of the selection, one at a time.

    With ``ignore_errors`` failures are collected and the loop goes on;
    otherwise the first failure raises :class:`ItemIndexError` and the
    remaining items are left untouched.
    """
    logger = logger or logging.getLogger("indexsync.drain")
    progress = progress or NullProgress()
    host = host or HostContext()
    caches = caches or RuntimeCaches()
    sites_by_root = {site.root_page_id: site for site in selection.sites}

    items = fetch_pending(conn, selection)
    log_event(logger, logging.DEBUG, "queue_items_found", count=len(items))

    outcome = RunOutcome(total=len(items))
    hosts: dict[int, str] = {}
    progress.start(len(items))
    for item in items:
        outcome.attempted += 1
        try:
            indexed = _index_item(
                conn,
                item,
                sites_by_root,
                hosts,
                host,
                caches,
                solr_config,
                type_field,
                clock,
                logger,
            )
        except Exception as exc:  # noqa: BLE001
            failure = ItemFailure(
                item_id=item.id,
                site_id=item.site_id,
                type_name=item.indexing_configuration,
                item_uid=item.item_uid,
                message=str(exc) or type(exc).__name__,
                trace=format_trace(exc, project_root),
            )
            outcome.failures.append(failure)
            progress.clear()
            log_event(
                logger,
                logging.ERROR,
                "item_index_failed",
                item=failure.label,
                error=failure.message,
                location=failure.trace[0] if failure.trace else None,
            )
            if on_failure is not None:
                on_failure(failure)
            if not ignore_errors:
                outcome.aborted = True
                raise ItemIndexError(failure, outcome) from exc
            progress.display()
            progress.advance()
            continue

        if indexed:
            outcome.succeeded += 1
        else:
            outcome.skipped += 1
        progress.advance()

    progress.finish()
    log_event(
        logger,
        logging.INFO,
        "drain_complete",
        total=outcome.total,
        succeeded=outcome.succeeded,
        skipped=outcome.skipped,
        failed=outcome.failed,
    )
    return outcome


def _index_item(
    conn: Any,
    item: QueueItem,
    sites_by_root: dict[int, Site],
    hosts: dict[int, str],
    host: HostContext,
    caches: RuntimeCaches,
    solr_config: SolrConfig,
    type_field: str,
    clock: Callable[[], int],
    logger: logging.Logger,
) -> bool:
    site = sites_by_root.get(item.root_page_id)
    if site is None:
        raise IndexerResolutionError(
            f"No site configured for root page {item.root_page_id} of item {item.id}"
        )
    binding = site.binding(item.indexing_configuration)
    if binding is None:
        raise IndexerResolutionError(
            f"Type {item.indexing_configuration} is not configured on site {site.identifier}"
        )
    log_event(
        logger,
        logging.DEBUG,
        "item_index_start",
        site=site.identifier,
        type=item.indexing_configuration,
        uid=item.item_uid,
    )
    env = IndexerEnv(
        conn=conn,
        site=site,
        binding=binding,
        solr=solr_config,
        caches=caches,
        type_field=type_field,
    )
    indexer = create_indexer(binding.indexer, binding.indexer_config, env)

    changed_before = item.changed
    if item.root_page_id not in hosts:
        hosts[item.root_page_id] = site.domain

    try:
        with host.scoped(hosts[item.root_page_id]):
            caches.invalidate()
            indexed = bool(indexer.index(item, host))
            if indexed:
                mark_indexed(conn, item, clock())
                changed_after = item.changed
                if changed_after > changed_before and changed_after > clock():
                    set_forced_change_time(conn, item, changed_after)
                    log_event(
                        logger,
                        logging.DEBUG,
                        "item_forced_change",
                        item_id=item.id,
                        changed=changed_after,
                    )
    finally:
        caches.invalidate()
    return indexed
