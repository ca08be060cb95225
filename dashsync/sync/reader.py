"""Read path: store freshness, then mirror, then the remote source."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from dashsync.common.config_loader import CollectionConfig
from dashsync.common.constants import LOCATES, WORK_ORDERS
from dashsync.common.errors import ReadError, TransportError
from dashsync.common.logging import get_logger, log_event
from dashsync.common.models import LocateRecord, Record, WorkOrderRecord
from dashsync.sync.mirror import CollectionMirror
from dashsync.sync.store import RecordStore
from dashsync.sync.transport import Transport, unwrap_list

RECORD_TYPES = {
    WORK_ORDERS: WorkOrderRecord,
    LOCATES: LocateRecord,
}


@dataclass(frozen=True)
class ReadResult:
    collection: str
    records: list[Record]
    source: str
    applied: bool = True
    error: ReadError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_records(collection: str, rows: list[dict[str, Any]], logger: logging.Logger | None = None) -> list[Record]:
    """Build records from rows, skipping any row the record type rejects."""
    record_type = RECORD_TYPES[collection]
    records = []
    for row in rows:
        try:
            records.append(record_type.from_payload(row))
        except (ValueError, TypeError) as exc:
            log_event(
                logger or get_logger("reader"),
                f"skipped unparseable {collection} row: {exc}",
                level=logging.WARNING,
                component="reader",
                collection=collection,
                event="ROW_SKIPPED",
                status="skipped",
            )
    return records


class CollectionReader:
    def __init__(
        self,
        store: RecordStore,
        transport: Transport,
        mirror: CollectionMirror,
        collections: dict[str, CollectionConfig],
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.mirror = mirror
        self.collections = collections
        self.logger = logger or get_logger("reader")

    async def read(self, collection: str, *, force: bool = False) -> ReadResult:
        if not force and not self.store.is_stale(collection):
            return ReadResult(collection, self.store.get_all(collection), source="store")

        mirrored = None if force else self.mirror.get(collection)
        if mirrored is not None:
            log_event(
                self.logger,
                f"mirror hit for {collection}",
                component="reader",
                collection=collection,
                event="MIRROR_HIT",
                status="ok",
                record_count=len(mirrored),
            )
            if not self.store.is_loaded(collection):
                self.store.replace_all(collection, parse_records(collection, mirrored, self.logger))
            return ReadResult(collection, self.store.get_all(collection), source="mirror")

        return await self._fetch(collection)

    async def _fetch(self, collection: str) -> ReadResult:
        generation = self.store.next_generation(collection)
        started = time.monotonic()
        log_event(
            self.logger,
            f"fetch start for {collection}",
            component="reader",
            collection=collection,
            event="FETCH_START",
            status="ok",
            attempt=generation,
        )
        try:
            payload = await self.transport.list_records(self.collections[collection].path)
            rows = unwrap_list(payload)
            records = parse_records(collection, rows, self.logger)
        except (TransportError, ValueError, TypeError) as exc:
            error = ReadError(collection, f"read of {collection} failed: {exc}")
            log_event(
                self.logger,
                str(error),
                level=logging.WARNING,
                component="reader",
                collection=collection,
                event="FETCH_FAIL",
                status="error",
                error_code=getattr(exc, "error_code", error.error_code),
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            # Keep whatever the store already holds; an unloaded collection reads as empty.
            return ReadResult(
                collection,
                self.store.get_all(collection),
                source="fallback",
                applied=False,
                error=error,
            )

        applied = self.store.replace_all(collection, records, generation=generation)
        if applied:
            self.mirror.put(collection, rows)
        log_event(
            self.logger,
            f"fetch end for {collection}",
            component="reader",
            collection=collection,
            event="FETCH_END",
            status="ok" if applied else "stale",
            attempt=generation,
            record_count=len(records),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return ReadResult(collection, self.store.get_all(collection), source="remote", applied=applied)
