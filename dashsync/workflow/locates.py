"""Locate request stages driven by the call timer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

from dashsync.common.models import LocateRecord
from dashsync.common.time_utils import parse_timestamp, utc_now

EMERGENCY_WINDOW = timedelta(hours=4)
STANDARD_WINDOW = timedelta(days=2)


class LocateStage(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


def is_emergency(call_type: str | None) -> bool:
    return "EMERGENCY" in (call_type or "").upper()


def expiration_time(record: LocateRecord) -> datetime | None:
    called_at = parse_timestamp(record.called_at)
    if called_at is None or not record.call_type:
        return None
    kind = record.call_type.upper()
    if kind == "EMERGENCY":
        return called_at + EMERGENCY_WINDOW
    if kind == "STANDARD":
        return called_at + STANDARD_WINDOW
    return None


def is_expired(record: LocateRecord, now: datetime | None = None) -> bool:
    if record.timer_expired:
        return True
    if not (record.locates_called and record.called_at and record.call_type):
        return False
    expires = expiration_time(record)
    if expires is None:
        return True
    return (now or utc_now()) > expires


def classify_locate(record: LocateRecord, now: datetime | None = None) -> LocateStage:
    if not record.locates_called:
        return LocateStage.PENDING
    if is_expired(record, now):
        return LocateStage.COMPLETED
    return LocateStage.IN_PROGRESS


def format_time_remaining(remaining: timedelta) -> str:
    total_ms = remaining.total_seconds() * 1000
    if total_ms <= 0:
        return "EXPIRED"
    if remaining > timedelta(days=1):
        hours = round(total_ms / (60 * 60 * 1000))
        return f"{hours // 24}d {hours % 24}h"
    total_seconds = int(remaining.total_seconds())
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def time_remaining(record: LocateRecord, now: datetime | None = None) -> str:
    if is_expired(record, now):
        return "EXPIRED"
    expires = expiration_time(record)
    if expires is None:
        return ""
    return format_time_remaining(expires - (now or utc_now()))


@dataclass
class LocateBuckets:
    pending: list[LocateRecord] = field(default_factory=list)
    in_progress: list[LocateRecord] = field(default_factory=list)
    completed: list[LocateRecord] = field(default_factory=list)
    deleted: list[LocateRecord] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            LocateStage.PENDING.value: len(self.pending),
            LocateStage.IN_PROGRESS.value: len(self.in_progress),
            LocateStage.COMPLETED.value: len(self.completed),
            "DELETED": len(self.deleted),
        }


def bucket_locates(records: Iterable[LocateRecord], now: datetime | None = None) -> LocateBuckets:
    now = now or utc_now()
    buckets = LocateBuckets()
    for record in records:
        if record.is_deleted:
            buckets.deleted.append(record)
            continue
        stage = classify_locate(record, now)
        if stage is LocateStage.PENDING:
            buckets.pending.append(record)
        elif stage is LocateStage.COMPLETED:
            buckets.completed.append(record)
        else:
            buckets.in_progress.append(record)
    return buckets
