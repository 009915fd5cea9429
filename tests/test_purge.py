import pytest

from indexsync.purge import PurgeError, build_purge_query, purge_index
from indexsync.selection import select_run
from indexsync.solr import SolrError


class FakeServer:
    def __init__(self, endpoint, fail_on_delete=False):
        self.endpoint = endpoint
        self.fail_on_delete = fail_on_delete
        self.calls = []

    def delete_by_query(self, query):
        if self.fail_on_delete:
            raise SolrError("connection refused")
        self.calls.append(("delete", query))

    def commit(self, wait_searcher=True):
        self.calls.append(("commit", wait_searcher))


def test_build_purge_query_is_exact():
    query = build_purge_query("abc123", "type_stringS", "news")
    assert query == '(siteHash:"abc123") AND (type_stringS:"news")'


def test_purge_deletes_each_selected_pair_on_every_core(make_site, solr_config):
    sites = [
        make_site("main", 1, types=("news", "pages"), endpoints=2),
        make_site("microsite", 2, types=("news",)),
    ]
    selection = select_run(sites, [], [])
    servers = {}

    def factory(site, config):
        servers[site.identifier] = [FakeServer(endpoint) for endpoint in site.endpoints]
        return servers[site.identifier]

    requests = purge_index(selection, "kind_s", solr_config, connection_factory=factory)

    assert requests == 5
    for server in servers["main"]:
        assert server.calls == [
            ("delete", '(siteHash:"hash-main") AND (kind_s:"news")'),
            ("commit", True),
            ("delete", '(siteHash:"hash-main") AND (kind_s:"pages")'),
            ("commit", True),
        ]
    assert servers["microsite"][0].calls == [
        ("delete", '(siteHash:"hash-microsite") AND (kind_s:"news")'),
        ("commit", True),
    ]


def test_purge_failure_raises_purge_error(make_site, solr_config):
    selection = select_run([make_site("main", 1)], [], [])

    def factory(site, config):
        return [FakeServer(endpoint, fail_on_delete=True) for endpoint in site.endpoints]

    with pytest.raises(PurgeError) as excinfo:
        purge_index(selection, "type_stringS", solr_config, connection_factory=factory)
    assert excinfo.value.site_id == "main"
    assert excinfo.value.type_name == "news"
    assert "connection refused" in str(excinfo.value)


def test_purge_posts_delete_and_commit_to_solr(make_site, solr_config, fake_solr):
    selection = select_run([make_site("main", 1)], [], [])
    purge_index(selection, "type_stringS", solr_config)

    assert len(fake_solr.requests) == 2
    delete_url, delete_payload = fake_solr.requests[0]
    commit_url, commit_payload = fake_solr.requests[1]
    assert delete_url.startswith("http://solr:8983/solr/main_core0/update?")
    assert delete_payload == {"delete": {"query": '(siteHash:"hash-main") AND (type_stringS:"news")'}}
    assert "commit=true" in commit_url
    assert "waitSearcher=true" in commit_url
    assert commit_payload == {}
