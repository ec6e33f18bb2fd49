"""
Resolver module for Clicktrack Platform.

Responsibilities:
    - Look up a link by short code
    - Apply the validity state machine (not found / inactive / expired)
    - Produce the destination URL, decrypting it for cloaked links

State machine (evaluated in order, first match wins):
    1. NOT_FOUND        - no link carries the short code        -> 404
    2. INACTIVE         - link.active is False (expiry ignored)   -> 410
    3. EXPIRED          - expires_at set and strictly before now  -> 410
    4. RESOLVED_CLOAKED - link.cloaked: decode(encrypted_destination),
                          falling back to original_url on failure
    5. RESOLVED_DIRECT  - destination = original_url, no decode

The resolver reads the links collection exactly once per call and never
mutates anything; click accounting is the recorder's job.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..cloak.codec import CloakCodec
from ..models import LinkRecord, utcnow
from ..storage.base import BaseStorage

log = logging.getLogger(__name__)


class Outcome(enum.Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    RESOLVED_CLOAKED = "resolved_cloaked"
    RESOLVED_DIRECT = "resolved_direct"


_STATUS = {
    Outcome.NOT_FOUND: 404,
    Outcome.INACTIVE: 410,
    Outcome.EXPIRED: 410,
    Outcome.RESOLVED_CLOAKED: 200,
    Outcome.RESOLVED_DIRECT: 302,
}


@dataclass(frozen=True)
class Resolution:
    """Result of resolving one short code."""

    outcome: Outcome
    link: Optional[LinkRecord] = None
    destination: Optional[str] = None

    @property
    def status_code(self) -> int:
        return _STATUS[self.outcome]

    @property
    def is_gone(self) -> bool:
        """Inactive and expired links look the same from outside (HTTP 410)."""
        return self.outcome in (Outcome.INACTIVE, Outcome.EXPIRED)

    @property
    def is_resolved(self) -> bool:
        return self.outcome in (Outcome.RESOLVED_CLOAKED, Outcome.RESOLVED_DIRECT)


class Resolver:
    def __init__(
        self,
        storage: BaseStorage,
        codec: CloakCodec,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.codec = codec
        self.clock = clock

    def resolve(self, short_code: str) -> Resolution:
        """
        Resolve a short code to an outcome and destination.

        Raises:
            StorageError: If the links collection cannot be read.
        """
        links = self.storage.read_all("links")
        link = next((l for l in links if l.short_code == short_code), None)

        if link is None:
            resolution = Resolution(Outcome.NOT_FOUND)
        elif not link.active:
            resolution = Resolution(Outcome.INACTIVE, link=link)
        elif link.expires_at is not None and link.expires_at < self.clock():
            resolution = Resolution(Outcome.EXPIRED, link=link)
        elif link.cloaked:
            destination = self.codec.decode(link.encrypted_destination)
            if destination is None:
                log.warning("Falling back to plain URL for cloaked link %s", link.id)
                destination = link.original_url
            resolution = Resolution(Outcome.RESOLVED_CLOAKED, link=link, destination=destination)
        else:
            resolution = Resolution(Outcome.RESOLVED_DIRECT, link=link, destination=link.original_url)

        log.debug("Resolved %r -> %s", short_code, resolution.outcome.value)
        return resolution
