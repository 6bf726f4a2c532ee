"""Snapshot the store to a JSON file and restore it on boot.

The file holds one JSON object mapping metric id to its wire record and is
replaced wholesale on every save.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

from ..errors import MetricsError
from ..metrics.base import Metric
from .base import Store

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _write_atomic(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8")


async def save_snapshot(store: Store, path: PathLike) -> int:
    """Write every stored record to ``path``; returns the number of records."""
    records = await store.snapshot()
    payload = json.dumps(
        {metric_id: metric.to_dict() for metric_id, metric in records.items()},
        indent=2,
        sort_keys=True,
    )
    await asyncio.to_thread(_write_atomic, Path(path), payload)
    return len(records)


async def load_snapshot(store: Store, path: PathLike) -> int:
    """Replace the store contents with the file at ``path``.

    A missing or blank file leaves the store untouched.
    """
    path = Path(path)
    if not path.exists():
        return 0
    raw = await asyncio.to_thread(_read, path)
    if not raw.strip():
        return 0

    data: Dict[str, Any] = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object of metrics")
    records = [Metric.from_dict({**record, "id": metric_id}) for metric_id, record in data.items()]
    await store.restore(records)
    return len(records)


class Backup:
    """Server-side backup hooks; failures are logged and never raised."""

    def __init__(self, store: Store, path: PathLike) -> None:
        self.store = store
        self.path = Path(path)

    async def save(self) -> bool:
        try:
            count = await save_snapshot(self.store, self.path)
        except (OSError, ValueError, MetricsError):
            logger.exception("failed to save backup to %s", self.path)
            return False
        logger.debug("saved %d metrics to %s", count, self.path)
        return True

    async def restore(self) -> bool:
        try:
            count = await load_snapshot(self.store, self.path)
        except (OSError, ValueError, TypeError, MetricsError):
            logger.exception("failed to restore backup from %s", self.path)
            return False
        logger.info("restored %d metrics from %s", count, self.path)
        return True
