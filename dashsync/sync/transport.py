"""Async transport interface over the REST endpoints."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Protocol

from dashsync.common.http import HttpClient


class Transport(Protocol):
    async def list_records(self, path: str) -> Any: ...

    async def patch_record(self, path: str, record_id: Any, fields: dict[str, Any]) -> Any: ...

    async def delete_record(self, path: str, record_id: Any) -> Any: ...

    async def bulk_delete(self, path: str, ids: Iterable[Any]) -> Any: ...

    async def mark_seen(self, path: str, ids: Iterable[Any]) -> Any: ...


def record_path(path: str, record_id: Any) -> str:
    return f"{path.rstrip('/')}/{record_id}/"


def unwrap_list(payload: Any) -> list[dict[str, Any]]:
    """Accept a bare array or an envelope with a ``data`` array."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict) and isinstance(payload.get("data"), list):
        rows = payload["data"]
    else:
        return []
    return [row for row in rows if isinstance(row, dict)]


class RestTransport:
    """Runs blocking ``HttpClient`` calls in a worker thread."""

    def __init__(self, client: HttpClient) -> None:
        self.client = client

    async def list_records(self, path: str) -> Any:
        return await asyncio.to_thread(self.client.get_json, path)

    async def patch_record(self, path: str, record_id: Any, fields: dict[str, Any]) -> Any:
        return await asyncio.to_thread(self.client.patch_json, record_path(path, record_id), fields)

    async def delete_record(self, path: str, record_id: Any) -> Any:
        return await asyncio.to_thread(self.client.delete, record_path(path, record_id))

    async def bulk_delete(self, path: str, ids: Iterable[Any]) -> Any:
        return await asyncio.to_thread(self.client.post_json, path, {"ids": list(ids)})

    async def mark_seen(self, path: str, ids: Iterable[Any]) -> Any:
        return await asyncio.to_thread(self.client.post_json, path, {"ids": list(ids)})

    def close(self) -> None:
        self.client.close()
