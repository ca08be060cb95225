"""Keyed in-memory cache of server-owned records.

The store only mirrors the remote system. Authoritative reads replace a whole
collection; user actions patch individual records optimistically and keep a
``Snapshot`` so the patch can be undone exactly.

Two counters guard ordering:

* the request generation, taken before a remote read, lets ``replace_all``
  drop a response that was overtaken by a newer request;
* the epoch, advanced by every accepted ``replace_all``, lets ``rollback``
  skip snapshots that an authoritative refetch has already superseded.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from dashsync.common.constants import DEFAULT_STALE_AFTER_SECONDS
from dashsync.common.errors import UnknownRecordError
from dashsync.common.logging import get_logger, log_event
from dashsync.common.models import Record

ChangeListener = Callable[[str], None]


@dataclass(frozen=True)
class Snapshot:
    collection: str
    record_id: Any
    fields: dict[str, Any]
    epoch: int
    removed: Record | None = None
    position: int | None = None


@dataclass
class _Collection:
    records: dict[Any, Record] = field(default_factory=dict)
    loaded: bool = False
    stale: bool = True
    loaded_at: float | None = None
    generation: int = 0
    epoch: int = 0


class RecordStore:
    def __init__(
        self,
        *,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.stale_after_seconds = stale_after_seconds
        self.clock = clock
        self.logger = logger or get_logger("store")
        self._collections: dict[str, _Collection] = {}
        self._listeners: list[ChangeListener] = []

    def _collection(self, name: str) -> _Collection:
        state = self._collections.get(name)
        if state is None:
            state = _Collection()
            self._collections[name] = state
        return state

    def _emit(self, collection: str) -> None:
        for listener in list(self._listeners):
            listener(collection)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def get(self, collection: str, record_id: Any) -> Record | None:
        return self._collection(collection).records.get(record_id)

    def get_all(self, collection: str) -> list[Record]:
        return list(self._collection(collection).records.values())

    def is_loaded(self, collection: str) -> bool:
        return self._collection(collection).loaded

    def is_stale(self, collection: str) -> bool:
        state = self._collection(collection)
        if not state.loaded or state.stale or state.loaded_at is None:
            return True
        return self.clock() - state.loaded_at >= self.stale_after_seconds

    def epoch(self, collection: str) -> int:
        return self._collection(collection).epoch

    def next_generation(self, collection: str) -> int:
        state = self._collection(collection)
        state.generation += 1
        return state.generation

    def replace_all(self, collection: str, records: Iterable[Record], generation: int | None = None) -> bool:
        """Authoritatively overwrite a collection; False when the response is stale."""
        state = self._collection(collection)
        if generation is not None and generation < state.generation:
            log_event(
                self.logger,
                f"discarded stale response for {collection}",
                component="store",
                collection=collection,
                event="STALE_DISCARD",
                status="skipped",
                attempt=generation,
            )
            return False

        state.records = {record.id: record for record in records}
        state.loaded = True
        state.stale = False
        state.loaded_at = self.clock()
        state.epoch += 1
        self._emit(collection)
        return True

    def patch(self, collection: str, record_id: Any, fields: dict[str, Any]) -> Snapshot:
        """Apply fields to one record and return the prior values of exactly those fields."""
        state = self._collection(collection)
        record = state.records.get(record_id)
        if record is None:
            raise UnknownRecordError(f"{collection} record {record_id!r} is not in the store")

        before = {name: getattr(record, name) for name in fields}
        state.records[record_id] = dataclasses.replace(record, **fields)
        self._emit(collection)
        return Snapshot(collection=collection, record_id=record_id, fields=before, epoch=state.epoch)

    def remove(self, collection: str, record_id: Any) -> Snapshot:
        state = self._collection(collection)
        if record_id not in state.records:
            raise UnknownRecordError(f"{collection} record {record_id!r} is not in the store")

        position = list(state.records).index(record_id)
        removed = state.records.pop(record_id)
        self._emit(collection)
        return Snapshot(
            collection=collection,
            record_id=record_id,
            fields={},
            epoch=state.epoch,
            removed=removed,
            position=position,
        )

    def rollback(self, snapshot: Snapshot) -> bool:
        """Restore a snapshot; False when a newer authoritative read superseded it."""
        state = self._collection(snapshot.collection)
        if snapshot.epoch != state.epoch:
            log_event(
                self.logger,
                f"rollback superseded for {snapshot.collection} record {snapshot.record_id}",
                component="store",
                collection=snapshot.collection,
                event="ROLLBACK_SUPERSEDED",
                status="skipped",
            )
            return False

        if snapshot.removed is not None:
            items = list(state.records.items())
            position = snapshot.position if snapshot.position is not None else len(items)
            items.insert(min(position, len(items)), (snapshot.record_id, snapshot.removed))
            state.records = dict(items)
        else:
            record = state.records.get(snapshot.record_id)
            if record is None:
                return False
            state.records[snapshot.record_id] = dataclasses.replace(record, **snapshot.fields)
        self._emit(snapshot.collection)
        return True

    def invalidate(self, collection: str) -> None:
        """Mark a collection stale without dropping its data."""
        self._collection(collection).stale = True

    def dispose(self) -> None:
        self._collections.clear()
        self._listeners.clear()
