"""One coalesced invalidate-and-refetch fed by independent triggers."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from dashsync.common.constants import DEFAULT_POLL_INTERVAL_SECONDS
from dashsync.common.logging import get_logger, log_event
from dashsync.sync.mirror import CollectionMirror
from dashsync.sync.store import RecordStore

PUSH_MESSAGE_TYPES = {"notification", "update"}

RefetchListener = Callable[[Any], None]


class TriggerKind(str, Enum):
    POLL = "poll"
    PUSH = "push"
    VISIBILITY = "visibility"
    CONNECTIVITY = "connectivity"
    MANUAL = "manual"


class InvalidationCoordinator:
    """Coalesces triggers into at most one scheduled or in-flight refetch.

    A trigger that arrives while a refetch is scheduled or running joins it
    instead of scheduling another. A ``fresh`` trigger that arrives after the
    running refetch has already issued its reads makes that task read once
    more before it completes, so the joined result postdates the trigger.
    """

    def __init__(
        self,
        refetch: Callable[[], Awaitable[Any]],
        *,
        store: RecordStore,
        mirror: CollectionMirror,
        collections: Iterable[str],
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        debounce_seconds: float = 0.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._refetch = refetch
        self.store = store
        self.mirror = mirror
        self.collections = tuple(collections)
        self.poll_interval_seconds = poll_interval_seconds
        self.debounce_seconds = debounce_seconds
        self.logger = logger or get_logger("invalidation")
        self._subscribed: set[TriggerKind] = {TriggerKind.MANUAL}
        self._listeners: list[RefetchListener] = []
        self._pending: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._reading = False
        self._rerun = False
        self._visible = True
        self._online = True
        self.refetch_count = 0

    def subscribe(self, kind: TriggerKind) -> None:
        self._subscribed.add(kind)

    def unsubscribe(self, kind: TriggerKind) -> None:
        if kind is not TriggerKind.MANUAL:
            self._subscribed.discard(kind)

    def is_subscribed(self, kind: TriggerKind) -> bool:
        return kind in self._subscribed

    def add_listener(self, listener: RefetchListener) -> None:
        self._listeners.append(listener)

    @property
    def refetch_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def invalidate(self, trigger: TriggerKind = TriggerKind.MANUAL, *, fresh: bool = False) -> asyncio.Task | None:
        """Invalidate caches and return the (possibly shared) refetch task."""
        if trigger not in self._subscribed:
            return None

        for collection in self.collections:
            self.store.invalidate(collection)
            self.mirror.invalidate(collection)

        if self.refetch_pending and fresh and self._reading:
            self._rerun = True
            log_event(
                self.logger,
                f"{trigger.value} trigger queued a re-read behind the in-flight refetch",
                component="invalidation",
                trigger=trigger.value,
                event="TRIGGER_RERUN",
                status="ok",
            )
            return self._pending

        if self.refetch_pending:
            log_event(
                self.logger,
                f"{trigger.value} trigger coalesced into pending refetch",
                component="invalidation",
                trigger=trigger.value,
                event="TRIGGER_COALESCED",
                status="skipped",
            )
            return self._pending

        log_event(
            self.logger,
            f"{trigger.value} trigger scheduled refetch",
            component="invalidation",
            trigger=trigger.value,
            event="TRIGGER",
            status="ok",
        )
        self._pending = asyncio.get_running_loop().create_task(self._run(trigger))
        return self._pending

    async def refresh(self, trigger: TriggerKind = TriggerKind.MANUAL, *, fresh: bool = False) -> Any:
        task = self.invalidate(trigger, fresh=fresh)
        if task is None:
            return None
        return await asyncio.shield(task)

    async def _run(self, trigger: TriggerKind) -> Any:
        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)
        started = time.monotonic()
        log_event(
            self.logger,
            "refetch start",
            component="invalidation",
            trigger=trigger.value,
            event="REFETCH_START",
            status="ok",
        )
        self._reading = True
        try:
            while True:
                self._rerun = False
                result = await self._refetch()
                if not self._rerun:
                    break
                log_event(
                    self.logger,
                    "refetch repeated for a trigger that arrived mid-read",
                    component="invalidation",
                    trigger=trigger.value,
                    event="REFETCH_REPEAT",
                    status="ok",
                )
        finally:
            self._reading = False
            self._rerun = False
        self.refetch_count += 1
        log_event(
            self.logger,
            "refetch complete",
            component="invalidation",
            trigger=trigger.value,
            event="REFETCH_END",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        for listener in list(self._listeners):
            listener(result)
        return result

    def notify_visibility(self, visible: bool) -> asyncio.Task | None:
        regained = visible and not self._visible
        self._visible = visible
        if regained:
            return self.invalidate(TriggerKind.VISIBILITY)
        return None

    def notify_connectivity(self, online: bool) -> asyncio.Task | None:
        regained = online and not self._online
        self._online = online
        if regained:
            return self.invalidate(TriggerKind.CONNECTIVITY)
        return None

    def handle_push_message(self, raw: str | bytes | dict) -> asyncio.Task | None:
        message = raw
        if isinstance(raw, (str, bytes)):
            try:
                message = json.loads(raw)
            except ValueError:
                log_event(
                    self.logger,
                    "ignored push message that is not JSON",
                    level=logging.WARNING,
                    component="invalidation",
                    trigger=TriggerKind.PUSH.value,
                    event="PUSH_IGNORED",
                    status="skipped",
                )
                return None
        if not isinstance(message, dict) or message.get("type") not in PUSH_MESSAGE_TYPES:
            return None
        return self.invalidate(TriggerKind.PUSH)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_seconds)
            self.invalidate(TriggerKind.POLL)

    def start(self) -> None:
        if TriggerKind.POLL in self._subscribed and self._poll_task is None:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        tasks = [task for task in (self._poll_task, self._pending) if task is not None and not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_task = None
        self._pending = None
