"""
Integration tests for the record store backends (memory, CSV and Postgres).

These tests parameterize over available backends:
- Always "memory" and "csv"
- "postgres" only if CLICKTRACK_DB_DSN is set

Each backend must honor the same BaseStorage contract: ordered reads,
append, whole-collection replace, and serialized `update` cycles that lose
no concurrent increments.
"""

import os
import threading

import pytest

from clicktrack_platform.models import COLLECTIONS, CampaignRecord, ClickEvent, LinkRecord
from clicktrack_platform.storage.storage_factory import get_storage


def available_backends():
    backends = ["memory", "csv"]
    if os.getenv("CLICKTRACK_DB_DSN"):
        backends.append("postgres")
    return backends


@pytest.fixture(params=available_backends())
def storage(request, tmp_path):
    backend = request.param
    store = get_storage(backend, data_dir=str(tmp_path / "data"))
    store.ensure_collections()
    if backend == "postgres":
        # shared database: start every test from empty collections
        for name in COLLECTIONS:
            store.replace_all(name, [])
    return store


def test_fresh_collections_are_empty(storage):
    for name in COLLECTIONS:
        assert storage.read_all(name) == []


def test_append_preserves_order_and_fields(storage, now):
    storage.append("links", LinkRecord(id="l1", short_code="aaaa0001", original_url="https://a.example.com/?x=1,2",
                                       cloaked=True, encrypted_destination="tok", expires_at=now))
    storage.append("links", LinkRecord(id="l2", short_code="bbbb0002", active=False))
    links = storage.read_all("links")
    assert [l.id for l in links] == ["l1", "l2"]
    assert links[0].original_url == "https://a.example.com/?x=1,2"
    assert links[0].cloaked is True
    assert links[0].encrypted_destination == "tok"
    assert links[0].expires_at == now
    assert links[0].active is True
    assert links[1].active is False
    assert links[1].expires_at is None


def test_replace_all_overwrites(storage):
    storage.append("campaigns", CampaignRecord(id="c1", name="Old"))
    storage.replace_all("campaigns", [CampaignRecord(id="c2", name="New"), CampaignRecord(id="c3", name="Newer")])
    assert [c.id for c in storage.read_all("campaigns")] == ["c2", "c3"]


def test_update_returns_mutator_result(storage):
    storage.append("campaigns", CampaignRecord(id="c1", name="Spring"))

    def rename(campaigns):
        campaigns[0].name = "Summer"
        return campaigns[0].id

    assert storage.update("campaigns", rename) == "c1"
    assert storage.read_all("campaigns")[0].name == "Summer"


def test_failed_mutator_leaves_collection_untouched(storage):
    storage.append("campaigns", CampaignRecord(id="c1", name="Spring"))

    def boom(campaigns):
        campaigns.clear()
        raise LookupError("nope")

    with pytest.raises(LookupError):
        storage.update("campaigns", boom)
    assert [c.id for c in storage.read_all("campaigns")] == ["c1"]


def test_reads_return_fresh_objects(storage):
    storage.append("links", LinkRecord(id="l1"))
    storage.read_all("links")[0].click_count = 99
    assert storage.read_all("links")[0].click_count == 0


def test_concurrent_updates_lose_no_increments(storage):
    storage.append("links", LinkRecord(id="l1", short_code="aaaa0001"))
    workers, per_worker = 6, 20
    barrier = threading.Barrier(workers)

    def bump(links):
        links[0].click_count += 1

    def worker():
        barrier.wait()
        for _ in range(per_worker):
            storage.update("links", bump)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert storage.read_all("links")[0].click_count == workers * per_worker


def test_appends_interleaved_with_updates(storage):
    storage.append("links", LinkRecord(id="l1"))
    storage.update("links", lambda links: links.append(LinkRecord(id="l2")))
    storage.append("links", LinkRecord(id="l3"))
    assert [l.id for l in storage.read_all("links")] == ["l1", "l2", "l3"]


def test_unknown_collection_rejected(storage):
    with pytest.raises(ValueError):
        storage.read_all("users")
    with pytest.raises(ValueError):
        storage.append("users", ClickEvent(id="x"))
