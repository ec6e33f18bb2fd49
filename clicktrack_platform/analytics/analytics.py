"""
Analytics module for Clicktrack Platform.

Responsibilities:
    - Filter click events by a named time range (1d, 7d, 30d, 90d)
    - Export click events as CSV
    - Dashboard stats (totals and today's clicks)
    - Per-link summary (devices, browsers, countries, last click)
    - Derive click counters from the event log and reconcile stored counters

The ClickEvent log is the source of truth; the stored `click_count` and
`total_clicks` counters are caches that `reconcile_counts` can rebuild.
"""

import csv
import io
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from ..models import ClickEvent, format_instant, utcnow
from ..storage.base import BaseStorage
from .base import BaseAnalytics

RANGES: Dict[str, timedelta] = {
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_RANGE = "7d"


def normalize_range(range_key: Optional[str]) -> str:
    """Unknown or empty range keys fall back to 7 days."""
    return range_key if range_key in RANGES else DEFAULT_RANGE


class Analytics(BaseAnalytics):
    def __init__(self, storage: BaseStorage, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.clock = clock

    def events_in_range(self, range_key: str) -> List[ClickEvent]:
        """
        Get click events with timestamp >= now - window.

        Events with an unreadable timestamp are excluded.
        """
        start = self.clock() - RANGES[normalize_range(range_key)]
        return [
            event
            for event in self.storage.read_all("clicks")
            if event.timestamp is not None and event.timestamp >= start
        ]

    def export_csv(self, events: Iterable[ClickEvent]) -> str:
        """Render events as CSV text with the clicks collection header."""
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=ClickEvent.COLUMNS)
        writer.writeheader()
        writer.writerows(event.to_row() for event in events)
        return buf.getvalue()

    def stats(self) -> Dict[str, int]:
        """
        Totals for the dashboard.

        Returns:
            dict: total_links, total_clicks, total_campaigns, total_domains,
                  today_clicks (events on the current UTC date).
        """
        clicks = self.storage.read_all("clicks")
        today = self.clock().date()
        return {
            "total_links": len(self.storage.read_all("links")),
            "total_clicks": len(clicks),
            "total_campaigns": len(self.storage.read_all("campaigns")),
            "total_domains": len(self.storage.read_all("domains")),
            "today_clicks": sum(
                1 for c in clicks if c.timestamp is not None and c.timestamp.date() == today
            ),
        }

    def summary(self, range_key: Optional[str] = None) -> Dict[str, Dict]:
        """
        Get a summary of click events per link.

        Returns:
            Dict[str, Dict]: link_id -> summary including:
                - total_clicks: int
                - last_click: ISO timestamp or None
                - devices / browsers / countries: value -> count

        Example:
            {
                "9f0c...": {
                    "total_clicks": 3,
                    "last_click": "2026-10-17T09:12:44+00:00",
                    "devices": {"Mobile": 2, "Desktop": 1},
                    "browsers": {"Safari": 2, "Chrome": 1},
                    "countries": {"Unknown": 3}
                }
            }
        """
        events = (
            self.events_in_range(range_key) if range_key else self.storage.read_all("clicks")
        )
        grouped: Dict[str, List[ClickEvent]] = {}
        for event in events:
            grouped.setdefault(event.link_id, []).append(event)

        summary_data: Dict[str, Dict] = {}
        for link_id, link_events in grouped.items():
            summary_data[link_id] = {
                "total_clicks": len(link_events),
                "last_click": format_instant(link_events[-1].timestamp) or None,
                "devices": dict(Counter(e.device_type for e in link_events)),
                "browsers": dict(Counter(e.browser for e in link_events)),
                "countries": dict(Counter(e.country for e in link_events)),
            }
        return summary_data

    # ---------------------------------------------------------------------
    # Derived counters
    # ---------------------------------------------------------------------
    def derived_link_counts(self) -> Dict[str, int]:
        """link_id -> number of click events."""
        return dict(Counter(event.link_id for event in self.storage.read_all("clicks")))

    def derived_campaign_counts(self) -> Dict[str, int]:
        """campaign_id -> number of click events."""
        return dict(Counter(event.campaign_id for event in self.storage.read_all("clicks")))

    def reconcile_counts(self) -> Dict[str, int]:
        """
        Rewrite stored counters from the event log.

        Each collection is recounted inside its own `update`, so a recording
        whose increment was applied before the lock is never overwritten.
        A recording still in flight (event appended, increment pending) is
        counted twice until the next reconcile; run it when traffic is quiet.

        Returns:
            dict: how many links and campaigns had a counter corrected.
        """
        def fix_links(links) -> int:
            link_counts = self.derived_link_counts()
            changed = 0
            for link in links:
                expected = link_counts.get(link.id, 0)
                if link.click_count != expected:
                    link.click_count = expected
                    changed += 1
            return changed

        def fix_campaigns(campaigns) -> int:
            campaign_counts = self.derived_campaign_counts()
            changed = 0
            for campaign in campaigns:
                expected = campaign_counts.get(campaign.id, 0)
                if campaign.total_clicks != expected:
                    campaign.total_clicks = expected
                    changed += 1
            return changed

        return {
            "links": self.storage.update("links", fix_links),
            "campaigns": self.storage.update("campaigns", fix_campaigns),
        }
