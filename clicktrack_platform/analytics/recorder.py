"""
Click recorder for Clicktrack Platform.

Responsibilities:
    - Append one ClickEvent per successful resolution
    - Increment the link's click_count
    - Increment the campaign's total_clicks

Design notes:
    - Runs as a fire-and-forget unit of work after the redirect response is
      produced. `record` never raises: every failure is logged and dropped, so
      accounting can never fail or delay a redirect.
    - The three steps are independent. A failed append (after retries) aborts
      accounting for the request; a failed counter update is logged and the
      other counter is still attempted. Partial completion is a legal state,
      and `Analytics.reconcile_counts` can rebuild counters from the event log.
    - Counter increments go through `BaseStorage.update`, which serializes
      read-modify-write cycles per collection, so concurrent clicks on the
      same link or campaign are never lost.
    - Event timestamps are stamped under a lock as max(arrival, last stamp),
      keeping them non-decreasing in append order.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..errors import StorageError
from ..models import ClickEvent, LinkRecord, new_id, utcnow
from ..storage.base import BaseStorage
from . import classify

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Request metadata captured before the response is sent."""

    ip_address: str = ""
    user_agent: str = ""
    referrer: str = ""
    arrived_at: datetime = field(default_factory=utcnow)


class ClickRecorder:
    def __init__(self, storage: BaseStorage, attempts: int = 3):
        """
        Args:
            storage (BaseStorage): Record store holding links, clicks and campaigns.
            attempts (int): Tries per step before giving up on StorageError.
        """
        self.storage = storage
        self.attempts = max(1, attempts)
        self._append_lock = threading.Lock()
        self._last_stamp: Optional[datetime] = None

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def record(self, link: LinkRecord, context: RequestContext) -> Optional[ClickEvent]:
        """
        Account one click on a resolved link.

        Returns:
            Optional[ClickEvent]: The appended event, or None if the append failed.
        """
        try:
            event = self._retry("append click event", lambda: self._append_event(link, context))
        except Exception:
            log.exception("Accounting failed for link %s: click event not recorded", link.id)
            return None

        try:
            self._retry("increment link click_count", lambda: self._increment_link(link.id))
        except Exception:
            log.exception("Accounting failed for link %s: click_count not updated", link.id)

        try:
            self._retry(
                "increment campaign total_clicks",
                lambda: self._increment_campaign(link.campaign_id),
            )
        except Exception:
            log.exception(
                "Accounting failed for campaign %s: total_clicks not updated", link.campaign_id
            )
        return event

    def build_event(self, link: LinkRecord, context: RequestContext) -> ClickEvent:
        country, city = classify.location(context.ip_address)
        return ClickEvent(
            id=new_id(),
            link_id=link.id,
            campaign_id=link.campaign_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            country=country,
            city=city,
            referrer=context.referrer,
            timestamp=context.arrived_at,
            device_type=classify.device_type(context.user_agent),
            browser=classify.browser(context.user_agent),
        )

    # ---------------------------------------------------------------------
    # Steps
    # ---------------------------------------------------------------------
    def _append_event(self, link: LinkRecord, context: RequestContext) -> ClickEvent:
        event = self.build_event(link, context)
        with self._append_lock:
            if self._last_stamp is not None and event.timestamp < self._last_stamp:
                event.timestamp = self._last_stamp
            self.storage.append("clicks", event)
            self._last_stamp = event.timestamp
        return event

    def _increment_link(self, link_id: str) -> None:
        def bump(links) -> bool:
            for link in links:
                if link.id == link_id:
                    link.click_count += 1
                    return True
            return False

        if not self.storage.update("links", bump):
            log.warning("Link %s vanished before its click_count could be updated", link_id)

    def _increment_campaign(self, campaign_id: str) -> None:
        def bump(campaigns) -> bool:
            for campaign in campaigns:
                if campaign.id == campaign_id:
                    campaign.total_clicks += 1
                    return True
            return False

        if not self.storage.update("campaigns", bump):
            log.warning("Campaign %s not found; total_clicks not updated", campaign_id)

    def _retry(self, what: str, step: Callable):
        for attempt in range(1, self.attempts + 1):
            try:
                return step()
            except StorageError as exc:
                if attempt == self.attempts:
                    raise
                log.warning("%s failed (attempt %d/%d): %s", what, attempt, self.attempts, exc)
