"""
Storage factory - switch storage backend from config (lazy env version)
=====================================================================

This module centralizes selection of the record store backend so the rest of
the app stays ignorant of where data lives.

- Reads environment **at call time** to avoid stale values in tests.
- Imports the DB backend **only if** the selected backend is "postgres".

Environment variables
---------------------
- CLICKTRACK_STORAGE_BACKEND: "csv" (default), "memory" or "postgres"
- CLICKTRACK_DATA_DIR:        directory for the CSV backend
- CLICKTRACK_DB_DSN:          DSN string if backend == "postgres"
"""

import logging
import os
from typing import Optional

from clicktrack_platform.config import settings
from clicktrack_platform.storage.base import BaseStorage
from clicktrack_platform.storage.csv_storage import CSVStorage
from clicktrack_platform.storage.storage import Storage

log = logging.getLogger(__name__)


def get_storage(backend: Optional[str] = None, **kwargs) -> BaseStorage:
    """
    Return a record store based on configuration.

    Parameters
    ----------
    backend : str, optional
        "csv", "memory" or "postgres". If omitted, reads CLICKTRACK_STORAGE_BACKEND.
    kwargs : dict
        Extra args for the backend: `data_dir=` for csv, `dsn=` for postgres.

    Returns
    -------
    BaseStorage-compatible instance
    """
    be = (backend or os.getenv("CLICKTRACK_STORAGE_BACKEND", "csv")).strip().lower()
    log.info("Selected storage backend: %r", be)

    if be == "memory":
        return Storage()

    if be == "csv":
        data_dir = kwargs.get("data_dir") or os.getenv("CLICKTRACK_DATA_DIR") or settings.DATA_DIR
        return CSVStorage(data_dir=data_dir)

    if be == "postgres":
        dsn = kwargs.get("dsn") or os.getenv("CLICKTRACK_DB_DSN", "")
        if not dsn:
            raise ValueError("DB_DSN is required for postgres backend (env CLICKTRACK_DB_DSN)")
        # Local import to avoid hard dependency when not using postgres
        from clicktrack_platform.storage.db_storage import DBStorage

        return DBStorage(dsn=dsn)

    raise ValueError(f"Unknown storage backend: {be!r}")
