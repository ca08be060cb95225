"""Merge locates and work orders into one ranked notification feed."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable

from dashsync.common.constants import DEFAULT_WINDOW_DAYS, DRAWER_LIMIT, LOCATES, WORK_ORDERS
from dashsync.common.deterministic import stable_sorted
from dashsync.common.models import LocateRecord, NotificationItem, Record, WorkOrderRecord
from dashsync.common.time_utils import parse_timestamp, utc_now

ITEM_TYPES = {
    LOCATES: "locate",
    WORK_ORDERS: "work_order",
}


@dataclass(frozen=True)
class NotificationSummary:
    feed: list[NotificationItem]
    badge_count: int
    total_count: int
    unseen_by_collection: dict[str, int]


class NotificationAggregator:
    def __init__(
        self,
        *,
        recency_fields: dict[str, str] | None = None,
        window_days: int = DEFAULT_WINDOW_DAYS,
        drawer_limit: int = DRAWER_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.recency_fields = recency_fields or {LOCATES: "created_at", WORK_ORDERS: "elapsed_time"}
        self.window = timedelta(days=window_days)
        self.drawer_limit = drawer_limit
        self.clock = clock

    def recency(self, collection: str, record: Record) -> datetime | None:
        return parse_timestamp(getattr(record, self.recency_fields[collection], None))

    def is_unseen(self, collection: str, record: Record, now: datetime | None = None) -> bool:
        if record.is_seen:
            return False
        timestamp = self.recency(collection, record)
        if timestamp is None:
            return False
        return timestamp >= (now or self.clock()) - self.window

    def unseen_ids(self, collection: str, records: Iterable[Record], now: datetime | None = None) -> list:
        now = now or self.clock()
        return [record.id for record in records if self.is_unseen(collection, record, now)]

    def unseen_count(
        self,
        locates: Iterable[LocateRecord],
        work_orders: Iterable[WorkOrderRecord],
        now: datetime | None = None,
    ) -> int:
        now = now or self.clock()
        return len(self.unseen_ids(LOCATES, locates, now)) + len(self.unseen_ids(WORK_ORDERS, work_orders, now))

    def _items(self, collection: str, records: Iterable[Record]) -> list[NotificationItem]:
        items = []
        for record in records:
            timestamp = self.recency(collection, record)
            if timestamp is None:
                continue
            item_type = ITEM_TYPES[collection]
            items.append(
                NotificationItem(
                    id=f"{item_type}-{record.id}",
                    entity_id=record.id,
                    type=item_type,
                    timestamp=timestamp,
                    is_seen=record.is_seen,
                    source=record,
                )
            )
        return items

    def feed(
        self,
        locates: Iterable[LocateRecord],
        work_orders: Iterable[WorkOrderRecord],
        limit: int | None = None,
    ) -> list[NotificationItem]:
        """Newest first across both sources, capped to ``limit`` (drawer size by default)."""
        items = self._items(LOCATES, locates) + self._items(WORK_ORDERS, work_orders)
        ranked = stable_sorted(items, key=lambda item: item.id)
        ranked = stable_sorted(ranked, key=lambda item: item.timestamp, reverse=True)
        return ranked[: self.drawer_limit if limit is None else limit]

    def summary(
        self,
        locates: Iterable[LocateRecord],
        work_orders: Iterable[WorkOrderRecord],
        limit: int | None = None,
    ) -> NotificationSummary:
        locates = list(locates)
        work_orders = list(work_orders)
        now = self.clock()
        unseen = {
            LOCATES: len(self.unseen_ids(LOCATES, locates, now)),
            WORK_ORDERS: len(self.unseen_ids(WORK_ORDERS, work_orders, now)),
        }
        total = sum(unseen.values())
        return NotificationSummary(
            feed=self.feed(locates, work_orders, limit),
            badge_count=min(total, self.drawer_limit),
            total_count=total,
            unseen_by_collection=unseen,
        )


def day_label(timestamp: datetime, now: datetime | None = None) -> str:
    """``Today``, ``Yesterday`` or the long date, in the local timezone."""
    local = timestamp.astimezone()
    today = (now or utc_now()).astimezone().date()
    if local.date() == today:
        return "Today"
    if local.date() == today - timedelta(days=1):
        return "Yesterday"
    return f"{local:%A}, {local:%B} {local.day}, {local.year}"


def group_by_day(items: Iterable[NotificationItem], now: datetime | None = None) -> dict[str, list[NotificationItem]]:
    groups: dict[str, list[NotificationItem]] = {}
    for item in items:
        groups.setdefault(day_label(item.timestamp, now), []).append(item)
    return groups
