"""
LinkManager module for Clicktrack Platform.

Responsibilities:
    - Create and toggle campaigns
    - Create, toggle and delete tracked links inside a campaign
    - Register, verify and delete custom domains
    - Build the display short URL of a link

Design notes:
    - This is the management surface: the only writer of original_url,
      cloaked, active and expires_at. The resolver and the click recorder
      only read links and bump counters.
    - Short codes come from a pluggable random strategy. Each candidate is
      checked against the links collection inside the same serialized
      `update` that inserts the link, so two concurrent creations can never
      claim the same code. After `max_attempts` collisions the code length
      grows by two and generation continues.
    - Cloaked links store the destination encrypted by the CloakCodec next
      to the plain original_url (the resolver's fallback).
    - Campaign `total_links` is maintained on link create/delete.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional
from urllib.parse import urlparse

from ..cloak.codec import CloakCodec
from ..errors import NotFoundError
from ..models import CampaignRecord, DomainRecord, LinkRecord, new_id, utcnow
from ..storage.base import BaseStorage
from .strategies import BaseStrategy, get_strategy_from_config

log = logging.getLogger(__name__)

DomainPattern = re.compile(
    r"^(?=.{1,253}$)(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)

# Longest destination URL accepted by create_link.
MAX_URL_LENGTH = 2048


class LinkManager:
    """
    Coordinates creation and lifecycle rules for campaigns, links and domains.
    """

    def __init__(
        self,
        storage: BaseStorage,
        codec: CloakCodec,
        code_strategy: Optional[BaseStrategy] = None,
        code_length: Optional[int] = None,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            storage (BaseStorage): Record store backend.
            codec (CloakCodec): Encrypts destinations of cloaked links.
            code_strategy (Optional[BaseStrategy]): Short-code generator; from config when None.
            code_length (Optional[int]): Code length; strategy/config default when None.
            max_attempts (int): Collisions tolerated before the code length grows.
            clock: Source of the current instant.
        """
        self.storage = storage
        self.codec = codec
        self.code_strategy = code_strategy or get_strategy_from_config()
        self.code_length = code_length
        self.max_attempts = max(1, max_attempts)
        self.clock = clock

    # ---------------------------------------------------------------------
    # Validation helpers
    # ---------------------------------------------------------------------
    def _validate_url(self, url: str) -> None:
        """
        Validate that a URL has an http/https scheme, a netloc, and at most
        MAX_URL_LENGTH characters.

        Raises:
            ValueError: If the URL is malformed.
        """
        if len(url or "") > MAX_URL_LENGTH:
            raise ValueError(f"URL exceeds {MAX_URL_LENGTH} characters")
        parsed = urlparse(url or "")
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("Invalid URL format")

    @staticmethod
    def normalize_domain(domain: str) -> str:
        """Lowercase, strip any scheme and trailing slash, then validate."""
        value = (domain or "").strip().lower()
        value = re.sub(r"^https?://", "", value).rstrip("/")
        if not DomainPattern.match(value):
            raise ValueError("Invalid domain")
        return value

    def _unique_code(self, taken: set) -> str:
        length = self.code_length
        while True:
            for _ in range(self.max_attempts):
                code = self.code_strategy.generate(length=length)
                if code not in taken:
                    return code
                log.warning("Short code collision on %r, retrying", code)
            # Every attempt collided: widen the code space.
            length = (length or len(code)) + 2

    # ---------------------------------------------------------------------
    # Campaigns
    # ---------------------------------------------------------------------
    def create_campaign(self, name: str, description: str = "") -> CampaignRecord:
        name = (name or "").strip()
        if not name:
            raise ValueError("Campaign name is required")
        campaign = CampaignRecord(
            id=new_id(), name=name, description=description or "",
            created_at=self.clock(), active=True,
        )
        self.storage.append("campaigns", campaign)
        log.info("Created campaign %s (%s)", campaign.id, name)
        return campaign

    def list_campaigns(self) -> List[CampaignRecord]:
        return self.storage.read_all("campaigns")

    def get_campaign(self, campaign_id: str) -> CampaignRecord:
        for campaign in self.storage.read_all("campaigns"):
            if campaign.id == campaign_id:
                return campaign
        raise NotFoundError(f"Campaign {campaign_id} not found")

    def toggle_campaign(self, campaign_id: str) -> CampaignRecord:
        def flip(campaigns) -> CampaignRecord:
            for campaign in campaigns:
                if campaign.id == campaign_id:
                    campaign.active = not campaign.active
                    return campaign
            raise NotFoundError(f"Campaign {campaign_id} not found")

        return self.storage.update("campaigns", flip)

    def _adjust_total_links(self, campaign_id: str, delta: int) -> None:
        def adjust(campaigns) -> None:
            for campaign in campaigns:
                if campaign.id == campaign_id:
                    campaign.total_links = max(0, campaign.total_links + delta)
                    return

        self.storage.update("campaigns", adjust)

    # ---------------------------------------------------------------------
    # Links
    # ---------------------------------------------------------------------
    def create_link(
        self,
        campaign_id: str,
        original_url: str,
        cloaked: bool = False,
        domain: str = "",
        expires_at: Optional[datetime] = None,
    ) -> LinkRecord:
        """
        Create a tracked link in a campaign.

        Raises:
            ValueError: On an invalid URL or domain.
            NotFoundError: If the campaign does not exist.
        """
        self._validate_url(original_url)
        domain = self.normalize_domain(domain) if domain else ""
        self.get_campaign(campaign_id)
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)

        def insert(links) -> LinkRecord:
            link = LinkRecord(
                id=new_id(),
                campaign_id=campaign_id,
                original_url=original_url,
                short_code=self._unique_code({l.short_code for l in links}),
                encrypted_destination=self.codec.encode(original_url) if cloaked else "",
                click_count=0,
                cloaked=cloaked,
                domain=domain,
                created_at=self.clock(),
                expires_at=expires_at,
                active=True,
            )
            links.append(link)
            return link

        link = self.storage.update("links", insert)
        self._adjust_total_links(campaign_id, +1)
        log.info("Created link %s -> code %s (cloaked=%s)", link.id, link.short_code, cloaked)
        return link

    def list_links(self, campaign_id: Optional[str] = None) -> List[LinkRecord]:
        links = self.storage.read_all("links")
        if campaign_id:
            links = [l for l in links if l.campaign_id == campaign_id]
        return links

    def get_link(self, link_id: str) -> LinkRecord:
        for link in self.storage.read_all("links"):
            if link.id == link_id:
                return link
        raise NotFoundError(f"Link {link_id} not found")

    def toggle_link(self, link_id: str) -> LinkRecord:
        def flip(links) -> LinkRecord:
            for link in links:
                if link.id == link_id:
                    link.active = not link.active
                    return link
            raise NotFoundError(f"Link {link_id} not found")

        return self.storage.update("links", flip)

    def delete_link(self, link_id: str) -> LinkRecord:
        """Remove a link. Its click events stay in the log."""
        def remove(links) -> LinkRecord:
            for i, link in enumerate(links):
                if link.id == link_id:
                    return links.pop(i)
            raise NotFoundError(f"Link {link_id} not found")

        removed = self.storage.update("links", remove)
        self._adjust_total_links(removed.campaign_id, -1)
        return removed

    def short_url(self, link: LinkRecord, default_base: str) -> str:
        """
        Display URL for a link.

        A link domain with a DomainRecord uses https when SSL is enabled and
        http otherwise; an unregistered link domain is used as https. Links
        without a domain use `default_base`.
        """
        if link.domain:
            record = next(
                (d for d in self.storage.read_all("domains") if d.domain == link.domain), None
            )
            scheme = "https" if record is None or record.ssl_enabled else "http"
            base = f"{scheme}://{link.domain}"
        else:
            base = default_base.rstrip("/")
        return f"{base}/{link.short_code}"

    # ---------------------------------------------------------------------
    # Domains
    # ---------------------------------------------------------------------
    def add_domain(self, domain: str, ssl_enabled: bool = False) -> DomainRecord:
        value = self.normalize_domain(domain)

        def insert(domains) -> DomainRecord:
            if any(d.domain == value for d in domains):
                raise ValueError("Domain already exists")
            record = DomainRecord(
                domain=value, verified=False, ssl_enabled=ssl_enabled, added_at=self.clock(),
            )
            domains.append(record)
            return record

        return self.storage.update("domains", insert)

    def list_domains(self) -> List[DomainRecord]:
        return self.storage.read_all("domains")

    def verify_domain(self, domain: str) -> DomainRecord:
        """
        Mark a domain verified. Ownership checks (DNS records) happen outside
        this service; this only records the result.
        """
        value = (domain or "").strip().lower()

        def mark(domains) -> DomainRecord:
            for record in domains:
                if record.domain == value:
                    record.verified = True
                    record.verified_at = self.clock()
                    return record
            raise NotFoundError(f"Domain {value} not found")

        return self.storage.update("domains", mark)

    def delete_domain(self, domain: str) -> DomainRecord:
        value = (domain or "").strip().lower()

        def remove(domains) -> DomainRecord:
            for i, record in enumerate(domains):
                if record.domain == value:
                    return domains.pop(i)
            raise NotFoundError(f"Domain {value} not found")

        return self.storage.update("domains", remove)
