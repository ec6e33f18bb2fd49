"""
Storage module for Clicktrack Platform (in-memory implementation).

Responsibilities:
    - Hold the four record collections in process memory
    - Satisfy the BaseStorage contract (read_all, replace_all, append, update)

Design:
    - Records are kept as serialized rows, exactly as the CSV backend keeps
      them on disk, so a record read back is always a fresh object and a
      caller mutating it never changes stored state behind the store's back.
    - It is intentionally simple to keep unit/integration tests fast and
      deterministic. For persistence use the CSV or Postgres backend.
"""

from typing import Dict, List, Sequence

from ..models import COLLECTIONS, record_type
from .base import BaseStorage


class Storage(BaseStorage):
    def __init__(self):
        """
        Initialize empty storage.

        Internal schema:
            self.collections = {
                "links": [ {"id": str, "short_code": str, ...}, ... ],
                "clicks": [...],
                ...
            }
        """
        super().__init__()
        self.collections: Dict[str, List[Dict[str, str]]] = {}

    def read_all(self, collection: str) -> List:
        cls = record_type(collection)
        with self._lock(collection):
            rows = list(self.collections.get(collection, []))
        return [cls.from_row(row) for row in rows]

    def replace_all(self, collection: str, records: Sequence) -> None:
        record_type(collection)
        rows = [record.to_row() for record in records]
        with self._lock(collection):
            self.collections[collection] = rows

    def append(self, collection: str, record) -> None:
        record_type(collection)
        with self._lock(collection):
            self.collections.setdefault(collection, []).append(record.to_row())

    def ensure_collections(self) -> None:
        for name in COLLECTIONS:
            with self._lock(name):
                self.collections.setdefault(name, [])
