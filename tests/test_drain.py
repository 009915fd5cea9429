import pytest

from indexsync.context import HostContext, RuntimeCaches
from indexsync.drain import ItemIndexError, drain_queue
from indexsync.indexers import Indexer, register_indexer, unregister_indexer
from indexsync.queue_init import initialize_queues
from indexsync.selection import select_run
from indexsync.storage import fetch_pending, get_queue_item


class ScriptedIndexer(Indexer):
    """Fails, skips or advances change times according to its config."""

    seen: list[tuple[int, str | None]] = []

    def index(self, item, host):
        ScriptedIndexer.seen.append((item.item_uid, host.host))
        if item.item_uid in self.config.get("fail", []):
            raise RuntimeError(f"boom {item.item_uid}")
        if item.item_uid in self.config.get("skip", []):
            return False
        if "advance_to" in self.config:
            item.changed = self.config["advance_to"]
        return True


class RecordingProgress:
    def __init__(self):
        self.events = []

    def start(self, total):
        self.events.append(("start", total))

    def advance(self, amount=1):
        self.events.append(("advance", amount))

    def clear(self):
        self.events.append(("clear",))

    def display(self):
        self.events.append(("display",))

    def finish(self):
        self.events.append(("finish",))


@pytest.fixture
def scripted():
    ScriptedIndexer.seen = []
    register_indexer("scripted", ScriptedIndexer)
    yield ScriptedIndexer
    unregister_indexer("scripted")


def _prepare(conn, make_site, source_table, count=5, **site_kwargs):
    source_table("news", [{"uid": uid, "changed": 500} for uid in range(1, count + 1)])
    site = make_site("main", 1, indexer="scripted", **site_kwargs)
    selection = select_run([site], [], [])
    initialize_queues(conn, selection)
    return selection


def test_drain_indexes_every_pending_item(conn, make_site, source_table, solr_config, scripted):
    selection = _prepare(conn, make_site, source_table)
    outcome = drain_queue(conn, selection, solr_config, "type_stringS", clock=lambda: 1000)

    assert outcome.total == 5
    assert outcome.succeeded == 5
    assert outcome.failed == 0
    assert [uid for uid, _ in scripted.seen] == [1, 2, 3, 4, 5]
    assert fetch_pending(conn, selection) == []


def test_failure_aborts_and_leaves_later_items_pending(
    conn, make_site, source_table, solr_config, scripted
):
    selection = _prepare(conn, make_site, source_table, indexer_config={"fail": [3]})
    reported = []

    with pytest.raises(ItemIndexError) as excinfo:
        drain_queue(
            conn,
            selection,
            solr_config,
            "type_stringS",
            on_failure=reported.append,
            clock=lambda: 1000,
        )

    outcome = excinfo.value.outcome
    assert outcome.aborted is True
    assert outcome.attempted == 3
    assert outcome.succeeded == 2
    assert excinfo.value.failure.label == "main:news:3"
    assert excinfo.value.failure.message == "boom 3"
    assert excinfo.value.failure.trace
    assert [failure.label for failure in reported] == ["main:news:3"]
    assert [item.item_uid for item in fetch_pending(conn, selection)] == [3, 4, 5]


def test_ignore_errors_continues_after_failures(
    conn, make_site, source_table, solr_config, scripted
):
    selection = _prepare(conn, make_site, source_table, indexer_config={"fail": [2, 4]})
    progress = RecordingProgress()

    outcome = drain_queue(
        conn,
        selection,
        solr_config,
        "type_stringS",
        ignore_errors=True,
        progress=progress,
        clock=lambda: 1000,
    )

    assert outcome.attempted == 5
    assert outcome.succeeded == 3
    assert [failure.item_uid for failure in outcome.failures] == [2, 4]
    assert outcome.aborted is False
    assert [item.item_uid for item in fetch_pending(conn, selection)] == [2, 4]
    assert progress.events[0] == ("start", 5)
    assert progress.events[-1] == ("finish",)
    assert progress.events.count(("clear",)) == 2
    assert progress.events.count(("display",)) == 2
    assert progress.events.count(("advance", 1)) == 5


def test_skipped_items_are_not_marked(conn, make_site, source_table, solr_config, scripted):
    selection = _prepare(conn, make_site, source_table, indexer_config={"skip": [1]})
    outcome = drain_queue(conn, selection, solr_config, "type_stringS", clock=lambda: 1000)
    assert outcome.skipped == 1
    assert outcome.succeeded == 4
    assert [item.item_uid for item in fetch_pending(conn, selection)] == [1]


def test_host_is_scoped_per_site_and_restored(
    conn, make_site, source_table, solr_config, scripted
):
    source_table("news", [{"uid": 1, "root_page_id": 1}, {"uid": 2, "root_page_id": 2}])
    sites = [
        make_site("alpha", 1, indexer="scripted", domain="alpha.test"),
        make_site("beta", 2, indexer="scripted", domain="beta.test"),
    ]
    selection = select_run(sites, [], [])
    initialize_queues(conn, selection)
    host = HostContext("admin.local")

    drain_queue(conn, selection, solr_config, "type_stringS", host=host, clock=lambda: 1000)

    assert scripted.seen == [(1, "alpha.test"), (2, "beta.test")]
    assert host.host == "admin.local"


def test_host_is_cleared_after_a_failure(conn, make_site, source_table, solr_config, scripted):
    selection = _prepare(conn, make_site, source_table, indexer_config={"fail": [1]})
    host = HostContext()
    with pytest.raises(ItemIndexError):
        drain_queue(conn, selection, solr_config, "type_stringS", host=host)
    assert host.host is None


def test_caches_are_invalidated_around_each_item(
    conn, make_site, source_table, solr_config, scripted
):
    selection = _prepare(conn, make_site, source_table, count=3)
    caches = RuntimeCaches()
    cache = caches.register({})
    cache["stale"] = "value"

    drain_queue(conn, selection, solr_config, "type_stringS", caches=caches, clock=lambda: 1000)

    assert caches.invalidations == 6
    assert cache == {}


def test_future_change_time_is_forced(conn, make_site, source_table, solr_config, scripted):
    selection = _prepare(conn, make_site, source_table, count=1, indexer_config={"advance_to": 2000})
    drain_queue(conn, selection, solr_config, "type_stringS", clock=lambda: 1000)

    stored = fetch_pending(conn, selection)
    assert len(stored) == 1
    assert stored[0].changed == 2000
    assert stored[0].indexed == 1000


def test_past_change_time_is_not_forced(conn, make_site, source_table, solr_config, scripted):
    selection = _prepare(conn, make_site, source_table, count=1, indexer_config={"advance_to": 800})
    drain_queue(conn, selection, solr_config, "type_stringS", clock=lambda: 1000)

    assert fetch_pending(conn, selection) == []
    assert get_queue_item(conn, 1).changed == 500


def test_unresolvable_indexer_is_an_item_failure(conn, make_site, source_table, solr_config):
    source_table("news", [{"uid": 1}])
    site = make_site("main", 1, indexer="missing")
    selection = select_run([site], [], [])
    initialize_queues(conn, selection)

    outcome = drain_queue(conn, selection, solr_config, "type_stringS", ignore_errors=True)

    assert outcome.failed == 1
    assert "Unknown indexer missing" in outcome.failures[0].message


def test_non_indexer_factory_is_rejected(conn, make_site, source_table, solr_config):
    source_table("news", [{"uid": 1}])
    register_indexer("bogus", lambda config, env: object())
    try:
        site = make_site("main", 1, indexer="bogus")
        selection = select_run([site], [], [])
        initialize_queues(conn, selection)
        with pytest.raises(ItemIndexError) as excinfo:
            drain_queue(conn, selection, solr_config, "type_stringS")
    finally:
        unregister_indexer("bogus")
    assert "is not a valid indexer" in excinfo.value.failure.message


def test_record_indexer_sends_documents(conn, make_site, source_table, solr_config, fake_solr):
    source_table("news", [{"uid": 1, "changed": 500}, {"uid": 2, "changed": 600}])
    site = make_site(
        "main",
        1,
        indexer_config={"fields": {"title_t": "title"}, "url": "/news/{uid}"},
    )
    selection = select_run([site], [], [])
    initialize_queues(conn, selection)

    outcome = drain_queue(conn, selection, solr_config, "type_stringS", clock=lambda: 1000)

    assert outcome.succeeded == 2
    docs = fake_solr.documents()
    assert [doc["id"] for doc in docs] == ["hash-main/news/1", "hash-main/news/2"]
    assert docs[0]["type_stringS"] == "news"
    assert docs[0]["siteHash"] == "hash-main"
    assert docs[0]["title_t"] == "news 1"
    assert docs[1]["url"] == "https://main.example.org/news/2"


def test_failed_item_does_not_leak_its_host_into_the_next(
    conn, make_site, source_table, solr_config, scripted
):
    source_table("news", [{"uid": 1, "root_page_id": 1}, {"uid": 2, "root_page_id": 2}])
    sites = [
        make_site("alpha", 1, indexer="scripted", domain="alpha.test", indexer_config={"fail": [1]}),
        make_site("beta", 2, indexer="scripted", domain="beta.test"),
    ]
    selection = select_run(sites, [], [])
    initialize_queues(conn, selection)
    host = HostContext("admin.local")

    outcome = drain_queue(
        conn,
        selection,
        solr_config,
        "type_stringS",
        ignore_errors=True,
        host=host,
        clock=lambda: 1000,
    )

    assert [failure.item_uid for failure in outcome.failures] == [1]
    assert outcome.succeeded == 1
    assert scripted.seen == [(1, "alpha.test"), (2, "beta.test")]
    assert host.host == "admin.local"
