"""
CSVStorage - file-backed storage for Clicktrack Platform
=======================================================

Persists each record collection as a human-readable, comma-delimited text
file with a header row: `<data_dir>/links.csv`, `clicks.csv`,
`campaigns.csv`, `domains.csv`. Implements the `BaseStorage` contract, so it
can be swapped for the in-memory or Postgres backend without touching
business logic.

Key Design Points
-----------------
- **Atomic replace**: `replace_all` writes a temporary file in the same
  directory and `os.replace`s it over the collection. A concurrent reader
  sees either the old or the new file, never a truncated one.
- **Cheap append**: `append` opens the file in append mode and writes one
  row; it never reads the collection body.
- **Serialized writers**: every write takes the collection's lock, and
  `update` (inherited) holds it across the whole read-modify-write. This is
  per process; run a single worker per data directory.
- **Fail-soft reads**: a missing file reads as empty; rows with missing or
  unknown columns are decoded by the record's `from_row` defaults.
- **Old headers**: appends follow the header already in the file, so a file
  written with a different column order stays aligned.

Example
-------
>>> storage = CSVStorage("/tmp/clicktrack")
>>> storage.ensure_collections()
>>> storage.read_all("links")
[]
"""

import csv
import logging
import os
import tempfile
from typing import List, Optional, Sequence

from ..errors import StorageError
from ..models import COLLECTIONS, record_type
from .base import BaseStorage

log = logging.getLogger(__name__)

# Hand-edited files may carry cells larger than the csv module default (128 KiB).
FIELD_SIZE_LIMIT = 16 * 1024 * 1024
csv.field_size_limit(max(csv.field_size_limit(), FIELD_SIZE_LIMIT))

# Undecodable bytes count as a read failure, like any other I/O error.
_IO_ERRORS = (OSError, csv.Error, UnicodeError)


class CSVStorage(BaseStorage):
    """CSV-file implementation of the record store contract.

    Parameters
    ----------
    data_dir : str
        Directory that holds one `<collection>.csv` per collection.
        Created on `ensure_collections` if missing.
    """

    def __init__(self, data_dir: str) -> None:
        super().__init__()
        self.data_dir = data_dir

    # ---- Internal helpers -------------------------------------------------

    def path_for(self, collection: str) -> str:
        record_type(collection)
        return os.path.join(self.data_dir, f"{collection}.csv")

    def _read_header(self, path: str) -> Optional[List[str]]:
        try:
            with open(path, newline="", encoding="utf-8") as fh:
                return next(csv.reader(fh), None)
        except FileNotFoundError:
            return None

    # ---- Contract methods -------------------------------------------------

    def read_all(self, collection: str) -> List:
        cls = record_type(collection)
        path = self.path_for(collection)
        try:
            with open(path, newline="", encoding="utf-8") as fh:
                rows = list(csv.DictReader(fh))
        except FileNotFoundError:
            return []
        except _IO_ERRORS as exc:
            raise StorageError(collection, f"read failed: {exc}") from exc
        return [cls.from_row(row) for row in rows]

    def replace_all(self, collection: str, records: Sequence) -> None:
        cls = record_type(collection)
        path = self.path_for(collection)
        with self._lock(collection):
            tmp_path = None
            try:
                os.makedirs(self.data_dir, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(
                    prefix=f".{collection}.", suffix=".tmp", dir=self.data_dir
                )
                with os.fdopen(fd, "w", newline="", encoding="utf-8") as fh:
                    writer = csv.DictWriter(fh, fieldnames=cls.COLUMNS)
                    writer.writeheader()
                    writer.writerows(record.to_row() for record in records)
                os.replace(tmp_path, path)
                tmp_path = None
            except _IO_ERRORS as exc:
                raise StorageError(collection, f"replace failed: {exc}") from exc
            finally:
                if tmp_path is not None and os.path.exists(tmp_path):
                    os.unlink(tmp_path)

    def append(self, collection: str, record) -> None:
        cls = record_type(collection)
        path = self.path_for(collection)
        with self._lock(collection):
            try:
                header = self._read_header(path)
                os.makedirs(self.data_dir, exist_ok=True)
                with open(path, "a", newline="", encoding="utf-8") as fh:
                    writer = csv.DictWriter(
                        fh, fieldnames=header or cls.COLUMNS, extrasaction="ignore"
                    )
                    if header is None:
                        writer.writeheader()
                    writer.writerow(record.to_row())
            except _IO_ERRORS as exc:
                raise StorageError(collection, f"append failed: {exc}") from exc

    def ensure_collections(self) -> None:
        try:
            os.makedirs(self.data_dir, exist_ok=True)
        except OSError as exc:
            raise StorageError("*", f"cannot create data dir {self.data_dir}: {exc}") from exc
        for name in COLLECTIONS:
            if not os.path.exists(self.path_for(name)):
                log.info("Creating empty collection %s at %s", name, self.path_for(name))
                self.replace_all(name, [])
