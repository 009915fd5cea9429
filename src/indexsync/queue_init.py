from __future__ import annotations

import logging
from typing import Any

from .models import InitializationResult, PairCount, RunSelection
from .storage import clear_queue, count_queue, populate_queue
from .utils import log_event


class InitializationError(RuntimeError):
    def __init__(self, site_id: str, type_name: str, reason: str | None = None) -> None:
        message = f"Unable to initialize queue {type_name} for site {site_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.site_id = site_id
        self.type_name = type_name


def initialize_queues(
    conn: Any,
    selection: RunSelection,
    logger: logging.Logger | None = None,
) -> InitializationResult:
    """Clear and refill the queue for every selected site/type pair.

    Pairs are independent: a failure aborts the run but leaves the pairs
    initialized before it in place.
    """
    logger = logger or logging.getLogger("indexsync.queue_init")
    counts: list[PairCount] = []
    for site, type_name in selection.pairs():
        binding = site.binding(type_name)
        log_event(
            logger,
            logging.DEBUG,
            "queue_initialize",
            site=site.identifier,
            type=type_name,
        )
        if binding is None:
            raise InitializationError(site.identifier, type_name, "no type configuration")
        try:
            cleared = clear_queue(conn, site, type_name)
            populate_queue(conn, site, binding)
            count = count_queue(conn, site, type_name)
        except Exception as exc:  # noqa: BLE001
            log_event(
                logger,
                logging.ERROR,
                "queue_initialize_failed",
                site=site.identifier,
                type=type_name,
                error=str(exc),
            )
            raise InitializationError(site.identifier, type_name, str(exc)) from exc
        log_event(
            logger,
            logging.DEBUG,
            "queue_initialized",
            site=site.identifier,
            type=type_name,
            cleared=cleared,
            count=count,
        )
        counts.append(PairCount(site_id=site.identifier, type_name=type_name, count=count))

    result = InitializationResult(pairs=counts)
    log_event(logger, logging.INFO, "queue_initialized_total", total=result.total)
    return result

