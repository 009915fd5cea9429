from __future__ import annotations

import logging
from typing import Sequence

from .models import RunSelection, Site
from .utils import log_event


class SelectionError(ValueError):
    pass


def select_run(
    all_sites: Sequence[Site],
    requested_sites: Sequence[str] | None,
    requested_types: Sequence[str] | None,
    logger: logging.Logger | None = None,
) -> RunSelection:
    """Resolve the requested sites and types against the configured ones.

    Empty filters mean "everything". Any unknown site or type aborts the whole
    selection; nothing is executed on a partial match.
    """
    logger = logger or logging.getLogger("indexsync.selection")
    sites = select_sites(all_sites, requested_sites, logger)
    types = select_types(sites, requested_types, logger)
    return RunSelection(sites=tuple(sites), types=tuple(types))


def select_sites(
    all_sites: Sequence[Site],
    requested: Sequence[str] | None,
    logger: logging.Logger,
) -> list[Site]:
    if not requested:
        log_event(logger, logging.DEBUG, "selection_all_sites", count=len(all_sites))
        sites = list(all_sites)
    else:
        by_id = {site.identifier: site for site in all_sites}
        sites = []
        for identifier in _unique(requested):
            site = by_id.get(identifier)
            if site is None:
                raise SelectionError(f"Site `{identifier}` is not available for indexing")
            log_event(logger, logging.DEBUG, "selection_add_site", site=identifier)
            sites.append(site)
    if not sites:
        raise SelectionError("No sites available for indexing")
    return sites


def select_types(
    sites: Sequence[Site],
    requested: Sequence[str] | None,
    logger: logging.Logger,
) -> list[str]:
    available: list[str] = []
    for site in sites:
        for type_name in site.enabled_types:
            log_event(
                logger,
                logging.DEBUG,
                "selection_site_type",
                site=site.identifier,
                type=type_name,
            )
            if type_name not in available:
                available.append(type_name)

    if not requested:
        log_event(logger, logging.DEBUG, "selection_all_types", types=",".join(available))
        return available

    types = []
    for type_name in _unique(requested):
        if type_name not in available:
            raise SelectionError(f"Type `{type_name}` is not available in the used sites")
        types.append(type_name)
    return types


def _unique(values: Sequence[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
