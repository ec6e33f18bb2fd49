"""
Unit tests for ClickRecorder.

Covers:
    - one event appended per recording, fields from the request context
    - link click_count and campaign total_clicks incremented
    - concurrent recordings of the same link lose no increments
    - event timestamps stay non-decreasing in append order
    - retries on transient StorageError
    - append failure aborts accounting; counter failures never raise
"""

import threading
from datetime import timedelta

from clicktrack_platform.analytics.recorder import ClickRecorder, RequestContext
from clicktrack_platform.errors import StorageError
from clicktrack_platform.models import LinkRecord
from clicktrack_platform.storage.storage import Storage

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class FlakyStorage(Storage):
    """In-memory storage whose chosen operations fail a set number of times."""

    def __init__(self, fail_append=0, fail_update=None):
        super().__init__()
        self.fail_append = fail_append
        self.fail_update = dict(fail_update or {})

    def append(self, collection, record):
        if collection == "clicks" and self.fail_append > 0:
            self.fail_append -= 1
            raise StorageError(collection, "disk full")
        return super().append(collection, record)

    def update(self, collection, mutator):
        if self.fail_update.get(collection, 0) > 0:
            self.fail_update[collection] -= 1
            raise StorageError(collection, "disk full")
        return super().update(collection, mutator)


def _ctx(now, **kw):
    fields = {"ip_address": "93.184.216.34", "user_agent": IPHONE_UA,
              "referrer": "https://mail.example.com/", "arrived_at": now}
    fields.update(kw)
    return RequestContext(**fields)


def test_record_appends_event_and_bumps_counters(storage, recorder, make_link, campaign, now):
    link = make_link()
    event = recorder.record(link, _ctx(now))

    events = storage.read_all("clicks")
    assert len(events) == 1
    stored = events[0]
    assert stored.id == event.id
    assert stored.link_id == link.id
    assert stored.campaign_id == campaign.id
    assert stored.ip_address == "93.184.216.34"
    assert stored.referrer == "https://mail.example.com/"
    assert stored.timestamp == now
    assert stored.device_type == "Mobile"
    assert stored.browser == "Safari"
    assert stored.country == "Unknown"

    assert storage.read_all("links")[0].click_count == 1
    assert storage.read_all("campaigns")[0].total_clicks == 1


def test_private_address_classified_as_local(storage, recorder, make_link, now):
    link = make_link()
    recorder.record(link, _ctx(now, ip_address="192.168.1.20"))
    assert storage.read_all("clicks")[0].country == "Local"


def test_only_the_clicked_link_is_counted(storage, recorder, make_link, now):
    clicked = make_link(short_code="aaaa0001")
    make_link(short_code="bbbb0002")
    recorder.record(clicked, _ctx(now))
    counts = {l.short_code: l.click_count for l in storage.read_all("links")}
    assert counts == {"aaaa0001": 1, "bbbb0002": 0}


def test_concurrent_recordings_lose_no_updates(storage, recorder, make_link, now):
    link = make_link()
    workers, per_worker = 8, 25
    barrier = threading.Barrier(workers)

    def worker():
        barrier.wait()
        for _ in range(per_worker):
            recorder.record(link, _ctx(now))

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    total = workers * per_worker
    assert len(storage.read_all("clicks")) == total
    assert storage.read_all("links")[0].click_count == total
    assert storage.read_all("campaigns")[0].total_clicks == total


def test_timestamps_non_decreasing_in_append_order(storage, recorder, make_link, now):
    link = make_link()
    recorder.record(link, _ctx(now))
    # a request that arrived earlier but is recorded later
    recorder.record(link, _ctx(now - timedelta(seconds=5)))
    recorder.record(link, _ctx(now + timedelta(seconds=1)))
    stamps = [e.timestamp for e in storage.read_all("clicks")]
    assert stamps == sorted(stamps)
    assert stamps == [now, now, now + timedelta(seconds=1)]


def _seed(storage, campaign):
    storage.ensure_collections()
    storage.append("campaigns", campaign)
    link = LinkRecord(id="l1", campaign_id=campaign.id, short_code="abcd1234")
    storage.append("links", link)
    return link


def test_transient_append_failure_is_retried(campaign, now):
    storage = FlakyStorage(fail_append=2)
    link = _seed(storage, campaign)

    event = ClickRecorder(storage, attempts=3).record(link, _ctx(now))
    assert event is not None
    assert len(storage.read_all("clicks")) == 1
    assert storage.read_all("links")[0].click_count == 1


def test_append_failure_aborts_accounting_without_raising(campaign, now, caplog):
    storage = FlakyStorage(fail_append=5)
    link = _seed(storage, campaign)

    assert ClickRecorder(storage, attempts=2).record(link, _ctx(now)) is None
    assert storage.read_all("clicks") == []
    assert storage.read_all("links")[0].click_count == 0
    assert storage.read_all("campaigns")[0].total_clicks == 0
    assert "click event not recorded" in caplog.text


def test_link_counter_failure_still_updates_campaign(campaign, now, caplog):
    storage = FlakyStorage(fail_update={"links": 5})
    link = _seed(storage, campaign)

    event = ClickRecorder(storage, attempts=2).record(link, _ctx(now))
    assert event is not None
    assert len(storage.read_all("clicks")) == 1
    assert storage.read_all("links")[0].click_count == 0
    assert storage.read_all("campaigns")[0].total_clicks == 1
    assert "click_count not updated" in caplog.text


def test_unexpected_error_is_logged_not_raised(campaign, now, caplog):
    storage = FlakyStorage()
    link = _seed(storage, campaign)

    def explode(collection, mutator):
        raise RuntimeError("unexpected")

    storage.update = explode
    assert ClickRecorder(storage).record(link, _ctx(now)) is not None
    assert "total_clicks not updated" in caplog.text


def test_vanished_link_is_skipped(storage, recorder, campaign, now):
    ghost = LinkRecord(id="gone", campaign_id=campaign.id, short_code="ghost001")
    recorder.record(ghost, _ctx(now))
    assert len(storage.read_all("clicks")) == 1
    assert storage.read_all("links") == []
    assert storage.read_all("campaigns")[0].total_clicks == 1
