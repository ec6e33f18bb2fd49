"""
Abstract Base Class for Analytics Backends.

Responsibilities:
    - Define the read-side operations any analytics implementation offers
    - Support easy substitution (e.g., the record-store reader below, or an
      external warehouse) without touching the API layer
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

__all__ = ["BaseAnalytics"]


class BaseAnalytics(ABC):
    """Abstract base for pluggable analytics backends."""

    @abstractmethod
    def events_in_range(self, range_key: str) -> List:  # pragma: no cover
        """
        Return click events newer than the window named by `range_key`.

        Args:
            range_key (str): One of "1d", "7d", "30d", "90d".
        """
        raise NotImplementedError

    @abstractmethod
    def summary(self, range_key: Optional[str] = None) -> Dict[str, Dict]:  # pragma: no cover
        """
        Provide a per-link summary of click events.

        Args:
            range_key (Optional[str]): Restrict to a time window; None for all events.
        """
        raise NotImplementedError
