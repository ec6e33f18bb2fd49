"""
Record models for Clicktrack Platform.

Responsibilities:
    - Define the four record types persisted by the Record Store
    - Fix the column order of each collection (used as the CSV header)
    - Convert records to and from flat string rows

Design:
    - Rows are `Dict[str, str]`, so every backend (CSV, memory, Postgres JSONB)
      shares one serialization.
    - `from_row` fails soft: missing, unknown or malformed fields fall back to
      empty string / 0 / False / None instead of raising. A half-written or
      hand-edited collection never takes the redirect path down.
    - Instants are timezone-aware UTC datetimes serialized as ISO-8601.
"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Tuple


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------
# Field codecs
# ---------------------------------------------------------------------
def format_instant(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_instant(raw: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 instant, returning None for blanks and garbage.

    Naive values are taken as UTC. A trailing "Z" is accepted.
    """
    if isinstance(raw, datetime):
        parsed = raw
    else:
        text = str(raw or "").strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in {"true", "1", "yes"}


def parse_count(raw: Any) -> int:
    try:
        return max(0, int(str(raw).strip()))
    except (TypeError, ValueError):
        return 0


def _text(raw: Any) -> str:
    return "" if raw is None else str(raw)


# ---------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------
class _Record:
    """Row conversion shared by all record types."""

    COLUMNS: ClassVar[Tuple[str, ...]] = ()

    def to_row(self) -> Dict[str, str]:
        row: Dict[str, str] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            kind = f.metadata.get("kind", "text")
            if kind == "bool":
                row[f.name] = "true" if value else "false"
            elif kind == "instant":
                row[f.name] = format_instant(value)
            else:
                row[f.name] = _text(value)
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]):
        values: Dict[str, Any] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            raw = row.get(f.name) if row else None
            kind = f.metadata.get("kind", "text")
            if kind == "bool":
                values[f.name] = parse_bool(raw) if raw not in (None, "") else f.default
            elif kind == "count":
                values[f.name] = parse_count(raw)
            elif kind == "instant":
                values[f.name] = parse_instant(raw)
            else:
                values[f.name] = _text(raw)
        return cls(**values)


def _bool(default: bool = False):
    return field(default=default, metadata={"kind": "bool"})


def _count():
    return field(default=0, metadata={"kind": "count"})


def _instant():
    return field(default=None, metadata={"kind": "instant"})


@dataclass
class LinkRecord(_Record):
    """A tracked short link belonging to a campaign."""

    id: str = ""
    campaign_id: str = ""
    original_url: str = ""
    short_code: str = ""
    encrypted_destination: str = ""
    click_count: int = _count()
    cloaked: bool = _bool()
    domain: str = ""
    created_at: Optional[datetime] = _instant()
    expires_at: Optional[datetime] = _instant()
    active: bool = _bool(True)

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        "id", "campaign_id", "original_url", "short_code", "encrypted_destination",
        "click_count", "cloaked", "domain", "created_at", "expires_at", "active",
    )


@dataclass
class ClickEvent(_Record):
    """One successful resolution. Append-only."""

    id: str = ""
    link_id: str = ""
    campaign_id: str = ""
    ip_address: str = ""
    user_agent: str = ""
    country: str = ""
    city: str = ""
    referrer: str = ""
    timestamp: Optional[datetime] = _instant()
    device_type: str = ""
    browser: str = ""

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        "id", "link_id", "campaign_id", "ip_address", "user_agent", "country",
        "city", "referrer", "timestamp", "device_type", "browser",
    )


@dataclass
class CampaignRecord(_Record):
    """An email campaign; total_links/total_clicks are denormalized aggregates."""

    id: str = ""
    name: str = ""
    description: str = ""
    created_at: Optional[datetime] = _instant()
    total_links: int = _count()
    total_clicks: int = _count()
    active: bool = _bool(True)

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        "id", "name", "description", "created_at", "total_links", "total_clicks", "active",
    )


@dataclass
class DomainRecord(_Record):
    """A custom domain used only to build display short URLs."""

    domain: str = ""
    verified: bool = _bool()
    ssl_enabled: bool = _bool()
    added_at: Optional[datetime] = _instant()
    verified_at: Optional[datetime] = _instant()

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        "domain", "verified", "ssl_enabled", "added_at", "verified_at",
    )


# Collection name -> record type. The Record Store only knows these four.
COLLECTIONS: Dict[str, type] = {
    "links": LinkRecord,
    "clicks": ClickEvent,
    "campaigns": CampaignRecord,
    "domains": DomainRecord,
}


def record_type(collection: str) -> type:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection!r}") from None
