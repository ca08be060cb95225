"""Work order stage classification.

Rules are evaluated in order and the first match wins. The order matters:
a record can satisfy several loose predicates at once (a submitted report
that is also waiting to lock), and only this sequence keeps the result
single-valued.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from dashsync.common.models import WorkOrderRecord, WorkOrderStatus


class Stage(str, Enum):
    REPORT_NEEDED = "REPORT_NEEDED"
    REPORT_SUBMITTED = "REPORT_SUBMITTED"
    HOLDING = "HOLDING"
    FINALIZED = "FINALIZED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class Classification:
    stage: Stage
    rule: str
    action: str | None = None
    by: str | None = None
    by_email: str | None = None
    action_time: str | None = None


@dataclass(frozen=True)
class _Rule:
    name: str
    when: Callable[[WorkOrderRecord], bool]
    stage: Stage
    action: str | None = None


def _finalized_deleted(record: WorkOrderRecord) -> bool:
    return record.status is WorkOrderStatus.DELETED and record.rme_completed


def _finalized_locked(record: WorkOrderRecord) -> bool:
    return record.status is WorkOrderStatus.LOCKED and record.rme_completed


def _holding(record: WorkOrderRecord) -> bool:
    return record.wait_to_lock or bool(record.moved_to_holding_date)


RULES = (
    _Rule("soft_deleted", lambda record: record.is_deleted, Stage.DELETED),
    _Rule("discarded", _finalized_deleted, Stage.FINALIZED, action="deleted"),
    _Rule("locked", _finalized_locked, Stage.FINALIZED, action="locked"),
    _Rule("holding", _holding, Stage.HOLDING),
    _Rule("submitted", lambda record: record.tech_report_submitted, Stage.REPORT_SUBMITTED),
    _Rule("default", lambda record: True, Stage.REPORT_NEEDED),
)


def classify(record: WorkOrderRecord) -> Classification:
    for rule in RULES:
        if not rule.when(record):
            continue
        if rule.action == "deleted":
            return Classification(
                stage=rule.stage,
                rule=rule.name,
                action=rule.action,
                by=record.finalized_by or "System",
                by_email=record.finalized_by_email or "",
                action_time=record.finalized_date or record.updated_at or record.created_at,
            )
        if rule.action == "locked":
            return Classification(
                stage=rule.stage,
                rule=rule.name,
                action=rule.action,
                by=record.finalized_by,
                by_email=record.finalized_by_email or "",
                action_time=record.finalized_date,
            )
        return Classification(stage=rule.stage, rule=rule.name)
    raise AssertionError("default rule always matches")


@dataclass
class StageBuckets:
    report_needed: list[WorkOrderRecord] = field(default_factory=list)
    report_submitted: list[WorkOrderRecord] = field(default_factory=list)
    holding: list[WorkOrderRecord] = field(default_factory=list)
    finalized: list[tuple[WorkOrderRecord, Classification]] = field(default_factory=list)
    deleted: list[WorkOrderRecord] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            Stage.REPORT_NEEDED.value: len(self.report_needed),
            Stage.REPORT_SUBMITTED.value: len(self.report_submitted),
            Stage.HOLDING.value: len(self.holding),
            Stage.FINALIZED.value: len(self.finalized),
            Stage.DELETED.value: len(self.deleted),
        }


def bucket_work_orders(records: Iterable[WorkOrderRecord]) -> StageBuckets:
    buckets = StageBuckets()
    for record in records:
        result = classify(record)
        if result.stage is Stage.DELETED:
            buckets.deleted.append(record)
        elif result.stage is Stage.FINALIZED:
            buckets.finalized.append((record, result))
        elif result.stage is Stage.HOLDING:
            buckets.holding.append(record)
        elif result.stage is Stage.REPORT_SUBMITTED:
            buckets.report_submitted.append(record)
        else:
            buckets.report_needed.append(record)
    return buckets
