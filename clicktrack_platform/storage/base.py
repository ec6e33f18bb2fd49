"""
Base storage interface for Clicktrack Platform.

Purpose:
    Define a small, stable contract over the four record collections
    (links, clicks, campaigns, domains) that multiple backends (in-memory,
    CSV files, Postgres) implement without changing resolver, recorder or
    manager code.

Concurrency:
    `replace_all` alone is not isolated: a caller that reads, transforms and
    writes back can lose a concurrent writer's change. Counter updates must
    go through `update`, which serializes read-modify-write cycles per
    collection.

Testing & Coverage:
    Abstract methods are not executed directly in tests and carry
    `# pragma: no cover`.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Sequence, TypeVar

from ..models import COLLECTIONS, record_type

T = TypeVar("T")

Mutator = Callable[[list], T]


class BaseStorage(ABC):
    """Abstract base class for record store backends."""

    def __init__(self) -> None:
        # One writer lock per collection.
        self._locks: Dict[str, threading.RLock] = {name: threading.RLock() for name in COLLECTIONS}

    def _lock(self, collection: str) -> threading.RLock:
        record_type(collection)  # raises ValueError on unknown names
        return self._locks[collection]

    @abstractmethod  # pragma: no cover
    def read_all(self, collection: str) -> List:
        """
        Return every record of a collection, in stored order.

        A missing collection yields an empty list, never an error.

        Raises:
            StorageError: On I/O failure.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def replace_all(self, collection: str, records: Sequence) -> None:
        """
        Overwrite the whole collection. Readers never observe a partial write.

        Raises:
            StorageError: On I/O failure.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def append(self, collection: str, record) -> None:
        """
        Add one record without reading the rest of the collection.

        Raises:
            StorageError: On I/O failure.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def ensure_collections(self) -> None:
        """Create every collection empty (header only) if it does not exist."""
        raise NotImplementedError

    def update(self, collection: str, mutator: Mutator) -> T:
        """
        Serialized read-modify-write of a collection.

        `mutator` receives the current records as a list, mutates it in place
        and returns any result; the list is then written back and the result
        returned. Concurrent `update` calls on the same collection never
        interleave, so increments are not lost.

        Backends with an external writer (Postgres) override this to take a
        database-level lock instead.
        """
        with self._lock(collection):
            records = self.read_all(collection)
            result = mutator(records)
            self.replace_all(collection, records)
            return result
