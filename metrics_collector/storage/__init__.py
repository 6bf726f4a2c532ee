from __future__ import annotations

import asyncio
from typing import Optional

from ..config import ServerSettings
from .backup import Backup, load_snapshot, save_snapshot
from .base import Store
from .memory import MemoryStore
from .sql import SQLStore


def build_store(settings: ServerSettings, stop_event: Optional[asyncio.Event] = None) -> Store:
    """SQL-backed store when a DSN is configured, in-memory otherwise.

    ``stop_event`` cuts short the SQL backend's retry waits on shutdown.
    """
    if settings.database_dsn:
        return SQLStore(
            settings.database_dsn, echo=settings.sqlalchemy_echo, stop_event=stop_event
        )
    return MemoryStore()


__all__ = [
    "Backup",
    "MemoryStore",
    "SQLStore",
    "Store",
    "build_store",
    "load_snapshot",
    "save_snapshot",
]
