"""Record shapes mirrored from the remote system."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, Union


class WorkOrderStatus(str, Enum):
    LOCKED = "LOCKED"
    DELETED = "DELETED"
    HOLDING = "HOLDING"


def _parse_status(value: Any) -> WorkOrderStatus | None:
    if value is None or value == "":
        return None
    if isinstance(value, WorkOrderStatus):
        return value
    return WorkOrderStatus(str(value).upper())


def _known_fields(cls) -> set[str]:
    return {f.name for f in fields(cls)}


@dataclass(frozen=True)
class WorkOrderRecord:
    id: int | str
    wo_number: str | None = None
    scheduled_date: str | None = None
    completed_date: str | None = None
    elapsed_time: str | None = None
    technician: str | None = None
    customer: str | None = None
    full_address: str | None = None
    task_name: str | None = None
    tech_report_submitted: bool = False
    wait_to_lock: bool = False
    reason: str | None = None
    notes: str | None = None
    moved_to_holding_date: str | None = None
    moved_created_by: str | None = None
    status: WorkOrderStatus | None = None
    rme_completed: bool = False
    report_id: str | None = None
    is_seen: bool = False
    is_deleted: bool = False
    deleted_by: str | None = None
    deleted_by_email: str | None = None
    deleted_date: str | None = None
    finalized_by: str | None = None
    finalized_by_email: str | None = None
    finalized_date: str | None = None
    last_report_link: str | None = None
    unlocked_report_link: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WorkOrderRecord":
        known = _known_fields(cls)
        values = {key: value for key, value in payload.items() if key in known}
        values["status"] = _parse_status(values.get("status"))
        for flag in ("tech_report_submitted", "wait_to_lock", "rme_completed", "is_seen", "is_deleted"):
            values[flag] = bool(values.get(flag) or False)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value if self.status is not None else None
        return payload


@dataclass(frozen=True)
class LocateRecord:
    id: int | str
    created_at: str | None = None
    is_seen: bool = False
    customer_address: str | None = None
    customer_name: str | None = None
    work_order_number: str | None = None
    scheduled_date: str | None = None
    locates_called: bool = False
    call_type: str | None = None
    called_at: str | None = None
    called_by: str | None = None
    called_by_email: str | None = None
    timer_started: bool = False
    timer_expired: bool = False
    time_remaining: str | None = None
    completed_at: str | None = None
    is_deleted: bool = False
    deleted_by: str | None = None
    deleted_by_email: str | None = None
    deleted_date: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LocateRecord":
        known = _known_fields(cls)
        values = {key: value for key, value in payload.items() if key in known}
        if not values.get("created_at"):
            values["created_at"] = payload.get("created_date")
        for flag in ("is_seen", "locates_called", "timer_started", "timer_expired", "is_deleted"):
            values[flag] = bool(values.get(flag) or False)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


Record = Union[WorkOrderRecord, LocateRecord]


@dataclass(frozen=True)
class Actor:
    """The signed-in user that mutations are attributed to."""

    name: str = "Unknown User"
    email: str = "unknown@example.com"
    id: str = "unknown"

    @classmethod
    def from_identity(cls, identity: dict[str, Any] | None) -> "Actor":
        if not identity:
            return cls()
        return cls(
            name=identity.get("name") or identity.get("full_name") or identity.get("username") or "Unknown User",
            email=identity.get("email") or identity.get("email_address") or "unknown@example.com",
            id=str(identity.get("id") or identity.get("user_id") or "unknown"),
        )


@dataclass(frozen=True)
class NotificationItem:
    id: str
    entity_id: int | str
    type: str
    timestamp: datetime
    is_seen: bool
    source: Record
