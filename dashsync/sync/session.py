"""Per-login wiring of the store, triggers, mutations and derived views."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from datetime import datetime
from typing import Any, Callable, Iterable

import websockets

from dashsync.common.config_loader import SyncConfig
from dashsync.common.constants import COLLECTIONS, LOCATES, WORK_ORDERS
from dashsync.common.logging import get_logger, log_event
from dashsync.common.models import Actor
from dashsync.common.time_utils import utc_now
from dashsync.notifications.aggregator import NotificationAggregator, NotificationSummary, group_by_day
from dashsync.notifications.badges import BadgeReconciler
from dashsync.sync.invalidation import InvalidationCoordinator, TriggerKind
from dashsync.sync.mirror import CollectionMirror
from dashsync.sync.mutations import MutationResult, NoticeBoard, Notifier, OptimisticMutationExecutor
from dashsync.sync.push import PushChannel
from dashsync.sync.reader import CollectionReader, ReadResult
from dashsync.sync.store import RecordStore
from dashsync.sync.transport import Transport
from dashsync.workflow.classifier import StageBuckets, bucket_work_orders
from dashsync.workflow.locates import LocateBuckets, bucket_locates


class DashboardSession:
    """Everything one signed-in user needs; create on login, ``dispose`` on logout."""

    def __init__(
        self,
        config: SyncConfig,
        transport: Transport,
        *,
        actor: Actor | None = None,
        role: str | None = None,
        notifier: Notifier | None = None,
        logger: logging.Logger | None = None,
        connect: Callable[..., Any] = websockets.connect,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.transport = transport
        self.actor = actor or Actor()
        self.role = role.upper() if role else None
        self.logger = logger or get_logger("session")
        self.clock = clock

        self.store = RecordStore(
            stale_after_seconds=config.timing.stale_after_seconds,
            clock=monotonic,
            logger=self.logger,
        )
        self.mirror = CollectionMirror(
            config.mirror_dir,
            ttl_seconds=config.timing.mirror_ttl_seconds,
            clock=wall_clock,
            logger=self.logger,
        )
        self.reader = CollectionReader(self.store, transport, self.mirror, config.collections, logger=self.logger)
        self.coordinator = InvalidationCoordinator(
            self.refetch,
            store=self.store,
            mirror=self.mirror,
            collections=COLLECTIONS,
            poll_interval_seconds=config.timing.poll_interval_seconds,
            debounce_seconds=config.timing.debounce_seconds,
            logger=self.logger,
        )
        self.notifier = notifier or NoticeBoard(self.logger)
        self.executor = OptimisticMutationExecutor(
            self.store,
            transport,
            config.collections,
            notifier=self.notifier,
            refetch=functools.partial(self.coordinator.refresh, fresh=True),
            logger=self.logger,
        )
        self.aggregator = NotificationAggregator(
            recency_fields={name: section.recency_field for name, section in config.collections.items()},
            window_days=config.notifications.window_days,
            drawer_limit=config.notifications.drawer_limit,
            clock=clock,
        )
        self.reconciler = BadgeReconciler(
            self.store,
            self.aggregator,
            self.executor,
            config.badges,
            logger=self.logger,
        )
        self.coordinator.add_listener(self.reconciler.reconcile)

        self.push: PushChannel | None = None
        if config.push.enabled and config.push.url and self.notifications_enabled:
            self.push = PushChannel(
                config.push.url,
                self.coordinator.handle_push_message,
                reconnect_seconds=config.timing.push_reconnect_seconds,
                connect=connect,
                logger=self.logger,
            )

    @property
    def notifications_enabled(self) -> bool:
        return self.config.notifications.allows(self.role)

    async def load(self) -> dict[str, ReadResult]:
        """Read every collection, serving fresh store or mirror data when possible."""
        results = await asyncio.gather(*(self.reader.read(name) for name in COLLECTIONS))
        return dict(zip(COLLECTIONS, results))

    async def refetch(self) -> dict[str, ReadResult]:
        """Authoritative re-read of every collection."""
        results = await asyncio.gather(*(self.reader.read(name, force=True) for name in COLLECTIONS))
        return dict(zip(COLLECTIONS, results))

    def start(self) -> None:
        for kind in (TriggerKind.POLL, TriggerKind.VISIBILITY, TriggerKind.CONNECTIVITY):
            self.coordinator.subscribe(kind)
        if self.push is not None:
            self.coordinator.subscribe(TriggerKind.PUSH)
            self.push.start()
        self.coordinator.start()
        log_event(self.logger, "session started", component="session", event="SESSION_START", status="ok")

    async def dispose(self) -> None:
        await self.coordinator.stop()
        if self.push is not None:
            await self.push.close()
        self.reconciler.reset()
        self.mirror.clear()
        self.store.dispose()
        log_event(self.logger, "session disposed", component="session", event="SESSION_DISPOSE", status="ok")

    # Derived views

    def stage_buckets(self) -> StageBuckets:
        return bucket_work_orders(self.store.get_all(WORK_ORDERS))

    def locate_buckets(self) -> LocateBuckets:
        return bucket_locates(self.store.get_all(LOCATES), self.clock())

    def notification_summary(self, limit: int | None = None) -> NotificationSummary:
        if not self.notifications_enabled:
            return NotificationSummary(feed=[], badge_count=0, total_count=0, unseen_by_collection={})
        return self.aggregator.summary(self.store.get_all(LOCATES), self.store.get_all(WORK_ORDERS), limit)

    def notification_list(self) -> NotificationSummary:
        """The full notifications page, capped at the configured list size."""
        return self.notification_summary(self.config.notifications.list_limit)

    def badge_counts(self) -> dict[str, int]:
        if not self.notifications_enabled:
            return {path: 0 for path in self.config.badges}
        return self.reconciler.counts()

    async def navigate(self, path: str) -> MutationResult | None:
        if not self.notifications_enabled:
            return None
        return await self.reconciler.acknowledge(path, actor=self.actor)

    def describe(self, limit: int | None = None) -> dict[str, Any]:
        summary = self.notification_summary(limit)
        now = self.clock()
        return {
            "work_orders": self.stage_buckets().counts(),
            "locates": self.locate_buckets().counts(),
            "notifications": {
                "badge_count": summary.badge_count,
                "total_count": summary.total_count,
                "unseen": summary.unseen_by_collection,
                "feed": [
                    {
                        "id": item.id,
                        "type": item.type,
                        "timestamp": item.timestamp.isoformat(),
                        "is_seen": item.is_seen,
                    }
                    for item in summary.feed
                ],
                "groups": {
                    label: [item.id for item in items]
                    for label, items in group_by_day(summary.feed, now).items()
                },
            },
            "badges": self.badge_counts(),
        }

    # Mutations

    async def _submit(self, kind: str, collection: str, ids: Iterable[Any], **params: Any) -> MutationResult:
        return await self.executor.submit(kind, collection, ids, actor=self.actor, **params)

    async def lock(self, record_id: Any) -> MutationResult:
        return await self._submit("lock", WORK_ORDERS, [record_id])

    async def wait_to_lock(self, record_id: Any, *, reason: str, notes: str = "") -> MutationResult:
        return await self._submit("wait_to_lock", WORK_ORDERS, [record_id], reason=reason, notes=notes)

    async def discard(self, record_id: Any) -> MutationResult:
        return await self._submit("discard", WORK_ORDERS, [record_id])

    async def soft_delete(self, collection: str, ids: Iterable[Any]) -> MutationResult:
        return await self._submit("soft_delete", collection, ids)

    async def restore(self, collection: str, ids: Iterable[Any]) -> MutationResult:
        return await self._submit("restore", collection, ids)

    async def permanent_delete(self, collection: str, ids: Iterable[Any]) -> MutationResult:
        return await self._submit("permanent_delete", collection, ids)

    async def mark_seen(self, collection: str, ids: Iterable[Any]) -> MutationResult:
        return await self._submit("mark_seen", collection, ids)

    async def mark_called(self, record_id: Any, *, call_type: str = "STANDARD") -> MutationResult:
        return await self._submit("mark_called", LOCATES, [record_id], call_type=call_type)

    async def complete(self, ids: Iterable[Any]) -> MutationResult:
        return await self._submit("complete", LOCATES, ids)
