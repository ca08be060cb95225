"""Short-lived persisted mirror of collection reads."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable

from dashsync.common.constants import DEFAULT_MIRROR_TTL_SECONDS
from dashsync.common.fs import read_json, write_json
from dashsync.common.logging import get_logger, log_event


class CollectionMirror:
    """One JSON entry per collection holding ``{data, timestamp}``.

    Entries older than ``ttl_seconds`` are ignored, so a burst of reads caused
    by several invalidation sources costs one remote call.
    """

    def __init__(
        self,
        mirror_dir: Path,
        *,
        ttl_seconds: float = DEFAULT_MIRROR_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self.mirror_dir = mirror_dir
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.logger = logger or get_logger("mirror")

    def _path(self, collection: str) -> Path:
        return self.mirror_dir / f"{collection}.json"

    def get(self, collection: str) -> list[dict[str, Any]] | None:
        path = self._path(collection)
        if not path.exists():
            return None
        try:
            entry = read_json(path)
        except (OSError, json.JSONDecodeError):
            log_event(
                self.logger,
                f"unreadable mirror entry for {collection}",
                level=logging.WARNING,
                component="mirror",
                collection=collection,
                event="MIRROR_CORRUPT",
                status="error",
            )
            path.unlink(missing_ok=True)
            return None

        if not isinstance(entry, dict):
            return None
        timestamp = entry.get("timestamp")
        data = entry.get("data")
        if not isinstance(timestamp, (int, float)) or not isinstance(data, list):
            return None
        if self.clock() - timestamp >= self.ttl_seconds:
            return None
        return data

    def put(self, collection: str, data: list[dict[str, Any]]) -> None:
        write_json(self._path(collection), {"data": data, "timestamp": self.clock()})

    def invalidate(self, collection: str) -> None:
        self._path(collection).unlink(missing_ok=True)

    def clear(self) -> None:
        if not self.mirror_dir.exists():
            return
        for path in self.mirror_dir.glob("*.json"):
            path.unlink(missing_ok=True)
