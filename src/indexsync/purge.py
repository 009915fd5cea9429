from __future__ import annotations

import logging
from typing import Callable

from .config import SolrConfig
from .models import RunSelection, Site
from .solr import SolrError, SolrWriteService, connections_for_site
from .utils import log_event

ConnectionFactory = Callable[[Site, SolrConfig], list[SolrWriteService]]


class PurgeError(RuntimeError):
    def __init__(self, site_id: str, type_name: str, core: str, message: str) -> None:
        super().__init__(f"Purging {type_name} on site {site_id} ({core}) failed: {message}")
        self.site_id = site_id
        self.type_name = type_name
        self.core = core


def build_purge_query(site_hash: str, field: str, type_name: str) -> str:
    return '(siteHash:"' + site_hash + '") AND (' + field + ':"' + type_name + '")'


def purge_index(
    selection: RunSelection,
    field: str,
    solr_config: SolrConfig,
    logger: logging.Logger | None = None,
    connection_factory: ConnectionFactory = connections_for_site,
) -> int:
    """Delete every document of the selected scope and commit each core.

    Returns the number of delete requests sent. Any write-channel failure
    aborts the run as :class:`PurgeError`.
    """
    logger = logger or logging.getLogger("indexsync.purge")
    requests = 0
    for site in selection.sites:
        servers = connection_factory(site, solr_config)
        for type_name in selection.types_for(site):
            query = build_purge_query(site.scope_hash(), field, type_name)
            log_event(logger, logging.DEBUG, "purge_query", site=site.identifier, query=query)
            for server in servers:
                try:
                    server.delete_by_query(query)
                    server.commit(wait_searcher=True)
                except SolrError as exc:
                    raise PurgeError(
                        site.identifier, type_name, server.endpoint.base_url, str(exc)
                    ) from exc
                requests += 1
    log_event(logger, logging.INFO, "purge_complete", requests=requests)
    return requests
