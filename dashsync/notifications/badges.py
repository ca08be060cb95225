"""Per-path optimistic badge clearing, reconciled on every refetch."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from dashsync.common.errors import MutationError
from dashsync.common.logging import get_logger, log_event
from dashsync.notifications.aggregator import NotificationAggregator
from dashsync.sync.mutations import MutationResult, OptimisticMutationExecutor
from dashsync.sync.store import RecordStore


class BadgeReconciler:
    """Zeroes a path's badge as soon as the user acknowledges it.

    The unseen ids are captured once, when the path is acknowledged, and only
    those ids are marked seen. While the mark-seen call is in flight the zero
    holds against any refetch. Once the call is answered, the next refetch
    drops it whether or not the server agrees, so records that arrived after
    the capture are not hidden for longer than one refresh.
    """

    def __init__(
        self,
        store: RecordStore,
        aggregator: NotificationAggregator,
        executor: OptimisticMutationExecutor,
        path_sources: dict[str, str],
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.executor = executor
        self.path_sources = dict(path_sources)
        self.logger = logger or get_logger("badges")
        self._cleared: dict[str, int] = {}
        self._pending: set[str] = set()

    def is_cleared(self, path: str) -> bool:
        return path in self._cleared

    def unseen_ids(self, path: str) -> list:
        collection = self.path_sources[path]
        return self.aggregator.unseen_ids(collection, self.store.get_all(collection))

    def count(self, path: str) -> int:
        if path not in self.path_sources or path in self._cleared:
            return 0
        return len(self.unseen_ids(path))

    def counts(self) -> dict[str, int]:
        return {path: self.count(path) for path in self.path_sources}

    def parent_count(self, paths: Iterable[str]) -> int:
        return sum(self.count(path) for path in paths)

    async def acknowledge(self, path: str, **submit_kwargs: Any) -> MutationResult | None:
        if path not in self.path_sources or path in self._pending:
            return None

        collection = self.path_sources[path]
        ids = self.unseen_ids(path)
        if not ids:
            return None

        self._cleared[path] = len(ids)
        self._pending.add(path)
        log_event(
            self.logger,
            f"badge cleared for {path}",
            component="badges",
            collection=collection,
            event="BADGE_CLEAR",
            status="ok",
            record_count=len(ids),
        )
        try:
            result = await self.executor.submit("mark_seen", collection, ids, **submit_kwargs)
        except MutationError:
            self._cleared.pop(path, None)
            raise
        finally:
            self._pending.discard(path)

        if not result.ok:
            self._cleared.pop(path, None)
            log_event(
                self.logger,
                f"badge clear reverted for {path}",
                level=logging.WARNING,
                component="badges",
                collection=collection,
                event="BADGE_REVERT",
                status="error",
                record_count=len(ids),
            )
        elif self.executor.refetch is not None:
            # The executor has already awaited a refetch that started after the commit.
            self._settle(path)
        return result

    def reconcile(self, _refetch_result: Any = None) -> None:
        """Drop overrides whose mark-seen call has already been answered."""
        for path in list(self._cleared):
            if path not in self._pending:
                self._settle(path)

    def _settle(self, path: str) -> None:
        if self._cleared.pop(path, None) is None:
            return
        remaining = len(self.unseen_ids(path))
        log_event(
            self.logger,
            f"badge override dropped for {path}",
            component="badges",
            collection=self.path_sources[path],
            event="BADGE_RECONCILE",
            status="confirmed" if remaining == 0 else "superseded",
            record_count=remaining,
        )

    def reset(self) -> None:
        self._cleared.clear()
        self._pending.clear()
