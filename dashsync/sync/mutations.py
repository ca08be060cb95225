"""Optimistic mutations with exact rollback.

Every kind follows the same protocol:

1. reject a duplicate of an in-flight ``(kind, collection, ids)`` request;
2. advance the collection's read generation, so a read already in flight
   cannot overwrite the patch, then snapshot and patch every target record
   in the store synchronously;
3. issue the remote call(s);
4. on success notify and await a refetch whose reads start after the commit;
5. on failure roll every target back, notify, and do not retry.

A bulk request whose remote fan-out partly succeeds is still rolled back as a
whole; the next refetch shows what the server actually committed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Protocol

from dashsync.common.config_loader import CollectionConfig
from dashsync.common.constants import LOCATES, WORK_ORDERS
from dashsync.common.errors import DuplicateMutationError, PartialBatchError, UnknownRecordError
from dashsync.common.http import HttpRequestError
from dashsync.common.ids import generate_report_id
from dashsync.common.logging import get_logger, log_event
from dashsync.common.models import Actor, WorkOrderStatus
from dashsync.common.time_utils import utc_timestamp_iso
from dashsync.sync.store import RecordStore, Snapshot
from dashsync.sync.transport import Transport


class Severity(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    message: str
    severity: Severity


class Notifier(Protocol):
    def notify(self, message: str, severity: Severity) -> None: ...


class NoticeBoard:
    """In-process notifier: keeps notices for the UI and logs them."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.notices: list[Notice] = []
        self.logger = logger or get_logger("notices")

    def notify(self, message: str, severity: Severity) -> None:
        self.notices.append(Notice(message, severity))
        log_event(
            self.logger,
            message,
            level=logging.ERROR if severity is Severity.ERROR else logging.INFO,
            component="notices",
            event="NOTICE",
            status=severity.value,
        )

    def drain(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices


class RemoteAction(str, Enum):
    PATCH = "patch"
    DELETE = "delete"
    MARK_SEEN = "mark_seen"


@dataclass(frozen=True)
class MutationContext:
    actor: Actor
    now: str
    params: dict[str, Any] = field(default_factory=dict)
    report_id: Callable[[], str] = generate_report_id


@dataclass(frozen=True)
class MutationKind:
    name: str
    collections: tuple[str, ...]
    remote: RemoteAction
    build_patch: Callable[[MutationContext], dict[str, Any]] | None
    success_one: str
    success_many: str
    failure_one: str
    failure_many: str

    def success_message(self, count: int) -> str:
        return self.success_one if count == 1 else self.success_many.format(count=count)

    def failure_message(self, count: int) -> str:
        return self.failure_one if count == 1 else self.failure_many.format(count=count)


@dataclass(frozen=True)
class MutationResult:
    kind: str
    collection: str
    ids: tuple
    ok: bool
    message: str
    error: Exception | None = None
    rolled_back: int = 0


def _lock_patch(ctx: MutationContext) -> dict[str, Any]:
    return {
        "finalized_by": ctx.actor.name,
        "finalized_by_email": ctx.actor.email,
        "finalized_date": ctx.now,
        "rme_completed": True,
        "report_id": ctx.report_id(),
        "tech_report_submitted": True,
        "status": WorkOrderStatus.LOCKED,
    }


def _wait_to_lock_patch(ctx: MutationContext) -> dict[str, Any]:
    return {
        "wait_to_lock": True,
        "reason": ctx.params.get("reason"),
        "notes": ctx.params.get("notes"),
        "moved_created_by": ctx.actor.name,
        "moved_to_holding_date": ctx.now,
        "tech_report_submitted": True,
        "status": WorkOrderStatus.HOLDING,
    }


def _discard_patch(ctx: MutationContext) -> dict[str, Any]:
    return {
        "finalized_by": ctx.actor.name,
        "finalized_by_email": ctx.actor.email,
        "finalized_date": ctx.now,
        "rme_completed": True,
        "status": WorkOrderStatus.DELETED,
    }


def _soft_delete_patch(ctx: MutationContext) -> dict[str, Any]:
    return {
        "is_deleted": True,
        "deleted_by": ctx.actor.name,
        "deleted_by_email": ctx.actor.email,
        "deleted_date": ctx.now,
    }


def _restore_patch(ctx: MutationContext) -> dict[str, Any]:
    return {
        "is_deleted": False,
        "deleted_date": None,
        "deleted_by": "",
        "deleted_by_email": "",
    }


def _mark_seen_patch(ctx: MutationContext) -> dict[str, Any]:
    return {"is_seen": True}


def _mark_called_patch(ctx: MutationContext) -> dict[str, Any]:
    emergency = str(ctx.params.get("call_type", "STANDARD")).upper() == "EMERGENCY"
    return {
        "locates_called": True,
        "call_type": "Emergency" if emergency else "Standard",
        "called_at": ctx.now,
        "called_by": ctx.actor.name,
        "called_by_email": ctx.actor.email,
        "timer_started": True,
        "timer_expired": False,
        "time_remaining": "4 hours" if emergency else "2 days",
    }


def _complete_patch(ctx: MutationContext) -> dict[str, Any]:
    return {
        "timer_expired": True,
        "time_remaining": "COMPLETED",
        "completed_at": ctx.now,
    }


BOTH = (WORK_ORDERS, LOCATES)

KINDS = {
    kind.name: kind
    for kind in (
        MutationKind(
            "lock", (WORK_ORDERS,), RemoteAction.PATCH, _lock_patch,
            "Report locked successfully", "{count} reports locked",
            "Failed to lock report", "Failed to lock reports",
        ),
        MutationKind(
            "wait_to_lock", (WORK_ORDERS,), RemoteAction.PATCH, _wait_to_lock_patch,
            "Report moved to holding", "{count} reports moved to holding",
            "Failed to move to holding", "Failed to move reports to holding",
        ),
        MutationKind(
            "discard", (WORK_ORDERS,), RemoteAction.PATCH, _discard_patch,
            "Report discarded successfully", "{count} reports discarded",
            "Failed to discard report", "Failed to discard reports",
        ),
        MutationKind(
            "soft_delete", BOTH, RemoteAction.PATCH, _soft_delete_patch,
            "Moved to recycle bin", "Items moved to recycle bin",
            "Failed to move to recycle bin", "Delete failed",
        ),
        MutationKind(
            "restore", BOTH, RemoteAction.PATCH, _restore_patch,
            "Item restored successfully", "{count} item(s) restored",
            "Restore failed", "Bulk restore failed",
        ),
        MutationKind(
            "permanent_delete", BOTH, RemoteAction.DELETE, None,
            "Item permanently deleted", "Items permanently deleted",
            "Permanent delete failed", "Bulk permanent delete failed",
        ),
        MutationKind(
            "mark_seen", BOTH, RemoteAction.MARK_SEEN, _mark_seen_patch,
            "Marked as seen", "{count} notifications marked as seen",
            "Failed to mark as seen", "Failed to mark notifications as seen",
        ),
        MutationKind(
            "mark_called", (LOCATES,), RemoteAction.PATCH, _mark_called_patch,
            "Locate marked as called", "{count} locates marked as called",
            "Failed to mark locate as called", "Failed to mark locates as called",
        ),
        MutationKind(
            "complete", (LOCATES,), RemoteAction.PATCH, _complete_patch,
            "Work order completed", "{count} work orders completed",
            "Failed to complete work order", "Failed to complete work orders",
        ),
    )
}


def to_wire(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in fields.items()}


def _unique(ids: Iterable[Any]) -> tuple:
    return tuple(dict.fromkeys(ids))


class OptimisticMutationExecutor:
    def __init__(
        self,
        store: RecordStore,
        transport: Transport,
        collections: dict[str, CollectionConfig],
        *,
        notifier: Notifier | None = None,
        refetch: Callable[[], Awaitable[Any]] | None = None,
        kinds: dict[str, MutationKind] | None = None,
        now: Callable[[], str] = utc_timestamp_iso,
        report_id: Callable[[], str] = generate_report_id,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.collections = collections
        self.notifier = notifier or NoticeBoard()
        self.refetch = refetch
        self.kinds = kinds or KINDS
        self.now = now
        self.report_id = report_id
        self.logger = logger or get_logger("mutations")
        self._pending: set[tuple[str, str, frozenset]] = set()

    def is_pending(self, kind: str, collection: str, ids: Iterable[Any]) -> bool:
        return (kind, collection, frozenset(ids)) in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _kind(self, name: str, collection: str) -> MutationKind:
        kind = self.kinds.get(name)
        if kind is None:
            raise ValueError(f"Unknown mutation kind: {name}")
        if collection not in kind.collections:
            raise ValueError(f"Mutation kind {name} does not apply to {collection}")
        return kind

    async def submit(
        self,
        kind_name: str,
        collection: str,
        ids: Iterable[Any],
        *,
        actor: Actor | None = None,
        **params: Any,
    ) -> MutationResult:
        kind = self._kind(kind_name, collection)
        target_ids = _unique(ids)
        if not target_ids:
            raise ValueError("A mutation needs at least one target id")

        key = (kind.name, collection, frozenset(target_ids))
        if key in self._pending:
            log_event(
                self.logger,
                f"{kind.name} already in flight for {len(target_ids)} {collection} record(s)",
                component="mutations",
                collection=collection,
                event="MUTATION_REJECTED",
                status="skipped",
                error_code=DuplicateMutationError.error_code,
            )
            raise DuplicateMutationError(f"{kind.name} is already pending for these {collection} records")

        missing = [record_id for record_id in target_ids if self.store.get(collection, record_id) is None]
        if missing:
            raise UnknownRecordError(f"{collection} records not in store: {missing}")

        self._pending.add(key)
        try:
            return await self._run(kind, collection, target_ids, actor or Actor(), params)
        finally:
            self._pending.discard(key)

    async def _run(
        self,
        kind: MutationKind,
        collection: str,
        ids: tuple,
        actor: Actor,
        params: dict[str, Any],
    ) -> MutationResult:
        started = time.monotonic()
        ctx = MutationContext(actor=actor, now=self.now(), params=params, report_id=self.report_id)

        # Reads issued before the patch must not overwrite it.
        self.store.next_generation(collection)
        snapshots: list[Snapshot] = []
        patches: dict[Any, dict[str, Any]] = {}
        for record_id in ids:
            if kind.build_patch is None:
                snapshots.append(self.store.remove(collection, record_id))
            else:
                patch = kind.build_patch(ctx)
                patches[record_id] = patch
                snapshots.append(self.store.patch(collection, record_id, patch))
        log_event(
            self.logger,
            f"{kind.name} applied locally to {len(ids)} {collection} record(s)",
            component="mutations",
            collection=collection,
            event="MUTATION_START",
            status="ok",
            record_count=len(ids),
        )

        try:
            await self._dispatch(kind, collection, ids, patches)
        except Exception as exc:
            rolled_back = sum(1 for snapshot in reversed(snapshots) if self.store.rollback(snapshot))
            message = self._failure_message(kind, ids, exc)
            log_event(
                self.logger,
                f"{kind.name} failed for {collection}, rolled back {rolled_back} record(s)",
                level=logging.WARNING,
                component="mutations",
                collection=collection,
                event="MUTATION_ROLLBACK",
                status="error",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                record_count=rolled_back,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            self.notifier.notify(message, Severity.ERROR)
            return MutationResult(kind.name, collection, ids, ok=False, message=message, error=exc, rolled_back=rolled_back)

        message = kind.success_message(len(ids))
        log_event(
            self.logger,
            f"{kind.name} committed for {len(ids)} {collection} record(s)",
            component="mutations",
            collection=collection,
            event="MUTATION_COMMIT",
            status="ok",
            record_count=len(ids),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        self.notifier.notify(message, Severity.SUCCESS)
        if self.refetch is not None:
            await self.refetch()
        return MutationResult(kind.name, collection, ids, ok=True, message=message)

    def _failure_message(self, kind: MutationKind, ids: tuple, exc: Exception) -> str:
        if isinstance(exc, PartialBatchError):
            return f"{kind.failure_message(len(ids))}: {len(exc.failed)} of {len(ids)} item(s) failed"
        if isinstance(exc, HttpRequestError) and exc.server_message:
            return exc.server_message
        return kind.failure_message(len(ids))

    async def _dispatch(self, kind: MutationKind, collection: str, ids: tuple, patches: dict[Any, dict[str, Any]]) -> None:
        cfg = self.collections[collection]
        if kind.remote is RemoteAction.MARK_SEEN:
            await self.transport.mark_seen(cfg.mark_seen_path, list(ids))
            return
        if kind.remote is RemoteAction.DELETE and len(ids) > 1 and cfg.bulk_delete_path:
            await self.transport.bulk_delete(cfg.bulk_delete_path, list(ids))
            return

        if kind.remote is RemoteAction.DELETE:
            calls = [self.transport.delete_record(cfg.path, record_id) for record_id in ids]
        else:
            calls = [self.transport.patch_record(cfg.path, record_id, to_wire(patches[record_id])) for record_id in ids]

        if len(calls) == 1:
            await calls[0]
            return

        outcomes = await asyncio.gather(*calls, return_exceptions=True)
        failures = [(record_id, outcome) for record_id, outcome in zip(ids, outcomes) if isinstance(outcome, BaseException)]
        if not failures:
            return
        for _record_id, outcome in failures:
            if not isinstance(outcome, Exception):
                raise outcome
        failed = [record_id for record_id, _outcome in failures]
        committed = [record_id for record_id in ids if record_id not in failed]
        if not committed:
            raise failures[0][1]
        log_event(
            self.logger,
            f"{kind.name} partially committed: {len(committed)} ok, {len(failed)} failed",
            level=logging.WARNING,
            component="mutations",
            collection=collection,
            event="PARTIAL_BATCH",
            status="error",
            error_code=PartialBatchError.error_code,
            record_count=len(failed),
        )
        raise PartialBatchError(
            f"{kind.name} failed for {len(failed)} of {len(ids)} {collection} record(s)",
            committed=committed,
            failed=failed,
        )
