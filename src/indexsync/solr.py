from __future__ import annotations

import http.client
import json
import logging
import time
from typing import Any, Iterable
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .config import SolrConfig
from .models import SolrEndpoint
from .utils import log_event

RETRY_STATUS_CODES = {429, 503}


class SolrError(RuntimeError):
    pass


class SolrWriteService:
    """Write channel of one Solr core: delete-by-query, commit and document adds."""

    def __init__(self, endpoint: SolrEndpoint, config: SolrConfig) -> None:
        self.endpoint = endpoint
        self.config = config
        self.logger = logging.getLogger("indexsync.solr")

    @property
    def timeout_seconds(self) -> int:
        return self.endpoint.timeout_seconds or self.config.timeout_seconds

    def delete_by_query(self, query: str) -> dict[str, Any]:
        log_event(
            self.logger,
            logging.DEBUG,
            "solr_delete_by_query",
            core=self.endpoint.base_url,
            query=query,
        )
        return self._update({"delete": {"query": query}})

    def commit(self, wait_searcher: bool = True) -> dict[str, Any]:
        params = {"commit": "true", "waitSearcher": "true" if wait_searcher else "false"}
        return self._update({}, params=params)

    def add_documents(self, documents: Iterable[dict[str, Any]]) -> dict[str, Any]:
        docs = list(documents)
        if not docs:
            return {}
        return self._update(docs)

    def _update(self, payload: Any, params: dict[str, str] | None = None) -> dict[str, Any]:
        query = {"wt": "json", **(params or {})}
        url = f"{self.endpoint.base_url}/update?{urlencode(query)}"
        body = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.config.user_agent,
        }
        attempt = 0
        while True:
            try:
                request = Request(url, data=body, headers=headers, method="POST")
                with urlopen(request, timeout=self.timeout_seconds) as response:
                    raw = response.read().decode("utf-8", errors="replace")
                break
            except HTTPError as exc:
                if exc.code in RETRY_STATUS_CODES and attempt < self.config.max_retries:
                    self._backoff(attempt, f"http_{exc.code}")
                    attempt += 1
                    continue
                raise SolrError(f"Solr HTTP error {exc.code} from {url}") from exc
            except URLError as exc:
                if attempt < self.config.max_retries:
                    self._backoff(attempt, str(exc.reason))
                    attempt += 1
                    continue
                raise SolrError(f"Solr connection error for {url}: {exc.reason}") from exc
            except (http.client.HTTPException, OSError) as exc:
                if attempt < self.config.max_retries:
                    self._backoff(attempt, type(exc).__name__)
                    attempt += 1
                    continue
                raise SolrError(f"Solr connection error for {url}: {exc!r}") from exc
        try:
            data = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise SolrError(f"Solr returned invalid JSON from {url}") from exc
        status = (data.get("responseHeader") or {}).get("status", 0)
        if status:
            raise SolrError(f"Solr update failed with status {status} from {url}")
        return data

    def _backoff(self, attempt: int, reason: str) -> None:
        delay = self.config.backoff_seconds * (attempt + 1)
        log_event(
            self.logger,
            logging.WARNING,
            "solr_retry",
            core=self.endpoint.base_url,
            attempt=attempt + 1,
            delay=delay,
            reason=reason,
        )
        time.sleep(delay)


def connections_for_site(site, config: SolrConfig) -> list[SolrWriteService]:
    return [SolrWriteService(endpoint, config) for endpoint in site.search_endpoints()]
