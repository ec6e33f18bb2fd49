"""
Global pytest fixtures for the Clicktrack Platform test suite.

Responsibilities:
    - Provide a fresh FastAPI TestClient via the app factory, backed by a CSV
      data directory under tmp_path
    - Provide isolated in-memory Storage, codec, resolver, recorder, manager
      and analytics fixtures for direct testing
    - Pin the clock so expiry and range filtering are deterministic

Why an app factory?
    Using `create_app()` ensures each test gets fresh state, eliminating
    cross-test flakiness.
"""

import os
from datetime import datetime, timezone

# The module-level `main.app` is built at import time; keep it off the disk.
os.environ.setdefault("CLICKTRACK_STORAGE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from main import create_app
from clicktrack_platform.analytics.analytics import Analytics
from clicktrack_platform.analytics.recorder import ClickRecorder
from clicktrack_platform.cloak.codec import CloakCodec
from clicktrack_platform.manager.link_manager import LinkManager
from clicktrack_platform.models import CampaignRecord, LinkRecord, new_id
from clicktrack_platform.resolver.resolver import Resolver
from clicktrack_platform.storage.csv_storage import CSVStorage
from clicktrack_platform.storage.storage import Storage

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
SECRET = "test-cloak-secret"


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture
def now() -> datetime:
    """The pinned current instant used by every clock-aware fixture."""
    return NOW


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def storage() -> Storage:
    """Provide a fresh in-memory Storage backend with empty collections."""
    s = Storage()
    s.ensure_collections()
    return s


@pytest.fixture
def codec() -> CloakCodec:
    return CloakCodec(SECRET)


@pytest.fixture
def resolver(storage, codec) -> Resolver:
    return Resolver(storage, codec, clock=fixed_clock)


@pytest.fixture
def recorder(storage) -> ClickRecorder:
    return ClickRecorder(storage, attempts=3)


@pytest.fixture
def manager(storage, codec) -> LinkManager:
    return LinkManager(storage, codec, clock=fixed_clock)


@pytest.fixture
def analytics(storage) -> Analytics:
    return Analytics(storage, clock=fixed_clock)


@pytest.fixture
def campaign(storage) -> CampaignRecord:
    """A campaign stored directly, with zeroed counters."""
    record = CampaignRecord(id=new_id(), name="Spring Sale", created_at=NOW, active=True)
    storage.append("campaigns", record)
    return record


@pytest.fixture
def make_link(storage, campaign, codec):
    """
    Factory storing a LinkRecord directly (bypassing the manager), so tests
    can set any lifecycle state, including ones the manager never produces.
    """
    def _make(**overrides) -> LinkRecord:
        fields = {
            "id": new_id(),
            "campaign_id": campaign.id,
            "original_url": "https://example.com/sale",
            "short_code": "a1b2c3d4",
            "click_count": 0,
            "cloaked": False,
            "created_at": NOW,
            "active": True,
        }
        fields.update(overrides)
        if fields["cloaked"] and "encrypted_destination" not in overrides:
            fields["encrypted_destination"] = codec.encode(fields["original_url"])
        link = LinkRecord(**fields)
        storage.append("links", link)
        return link

    return _make


@pytest.fixture
def csv_storage(tmp_path) -> CSVStorage:
    s = CSVStorage(str(tmp_path / "data"))
    s.ensure_collections()
    return s


@pytest.fixture
def app(tmp_path, monkeypatch):
    """
    Fresh app over a CSV data directory, with a pinned clock and test secret.
    """
    from clicktrack_platform.config import settings

    monkeypatch.setattr(settings, "CLOAK_SECRET", SECRET)
    monkeypatch.setattr(settings, "INTERSTITIAL_DELAY_MS", 1500)
    monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "")
    return create_app(storage=CSVStorage(str(tmp_path / "data")), clock=fixed_clock)


@pytest.fixture
def client(app) -> TestClient:
    """
    Provide a TestClient that does not follow redirects, so 302s and their
    Location headers can be asserted directly.
    """
    return TestClient(app, follow_redirects=False)
