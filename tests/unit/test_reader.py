from __future__ import annotations

import asyncio
from pathlib import Path

from dashsync.common.config_loader import CollectionConfig
from dashsync.common.constants import LOCATES, WORK_ORDERS
from dashsync.common.errors import ReadError
from dashsync.common.http import HttpRequestError
from dashsync.sync.mirror import CollectionMirror
from dashsync.sync.reader import CollectionReader
from dashsync.sync.store import RecordStore

COLLECTIONS = {
    WORK_ORDERS: CollectionConfig(WORK_ORDERS, "/work-orders-today/", "elapsed_time", "/work-orders-today/mark-seen/"),
    LOCATES: CollectionConfig(LOCATES, "/locates/", "created_at", "/locates/mark-seen/"),
}


class FakeTransport:
    def __init__(self, payloads=None, error=None):
        self.payloads = payloads or {}
        self.error = error
        self.calls = []

    async def list_records(self, path):
        self.calls.append(path)
        if self.error is not None:
            raise self.error
        return self.payloads.get(path, [])


class SequencedTransport:
    def __init__(self, responses):
        self.responses = list(responses)

    async def list_records(self, path):
        gate, rows = self.responses.pop(0)
        if gate is not None:
            await gate.wait()
        return rows


def _reader(tmp_path: Path, transport, store=None):
    store = store or RecordStore()
    return CollectionReader(store, transport, CollectionMirror(tmp_path), COLLECTIONS), store


def test_first_read_fetches_and_mirrors(tmp_path: Path):
    transport = FakeTransport({"/locates/": [{"id": 1, "created_at": "2026-10-01T10:00:00Z"}]})
    reader, store = _reader(tmp_path, transport)

    result = asyncio.run(reader.read(LOCATES))

    assert result.source == "remote"
    assert result.ok
    assert [record.id for record in result.records] == [1]
    assert store.is_loaded(LOCATES)
    assert (tmp_path / "locates.json").exists()


def test_fresh_store_read_makes_no_remote_call(tmp_path: Path):
    transport = FakeTransport({"/locates/": [{"id": 1}]})
    reader, _store = _reader(tmp_path, transport)

    async def scenario():
        await reader.read(LOCATES)
        return await reader.read(LOCATES)

    second = asyncio.run(scenario())

    assert second.source == "store"
    assert transport.calls == ["/locates/"]


def test_mirror_serves_a_new_store_within_ttl(tmp_path: Path):
    transport = FakeTransport({"/work-orders-today/": [{"id": 5, "status": "locked", "rme_completed": True}]})
    first_reader, _ = _reader(tmp_path, transport)
    asyncio.run(first_reader.read(WORK_ORDERS))

    second_reader, second_store = _reader(tmp_path, transport)
    result = asyncio.run(second_reader.read(WORK_ORDERS))

    assert result.source == "mirror"
    assert len(transport.calls) == 1
    assert second_store.get(WORK_ORDERS, 5).rme_completed


def test_forced_read_bypasses_store_and_mirror(tmp_path: Path):
    transport = FakeTransport({"/locates/": []})
    reader, _ = _reader(tmp_path, transport)

    async def scenario():
        await reader.read(LOCATES)
        return await reader.read(LOCATES, force=True)

    result = asyncio.run(scenario())
    assert result.source == "remote"
    assert len(transport.calls) == 2


def test_envelope_payload_is_unwrapped(tmp_path: Path):
    transport = FakeTransport({"/locates/": {"data": [{"id": 1}, {"id": 2}, "junk"]}})
    reader, _ = _reader(tmp_path, transport)

    result = asyncio.run(reader.read(LOCATES))
    assert [record.id for record in result.records] == [1, 2]


def test_failed_read_keeps_previous_data(tmp_path: Path):
    transport = FakeTransport({"/locates/": [{"id": 1}]})
    reader, store = _reader(tmp_path, transport)

    async def scenario():
        await reader.read(LOCATES)
        transport.error = HttpRequestError("HTTP status: 500", status=500)
        return await reader.read(LOCATES, force=True)

    result = asyncio.run(scenario())

    assert result.source == "fallback"
    assert not result.ok
    assert isinstance(result.error, ReadError)
    assert result.error.collection == LOCATES
    assert [record.id for record in store.get_all(LOCATES)] == [1]


def test_failed_first_read_reads_as_empty(tmp_path: Path):
    transport = FakeTransport(error=HttpRequestError("HTTP status: 502", status=502))
    reader, store = _reader(tmp_path, transport)

    result = asyncio.run(reader.read(WORK_ORDERS))

    assert result.records == []
    assert not result.ok
    assert not store.is_loaded(WORK_ORDERS)


def test_row_with_unknown_status_is_skipped(tmp_path: Path):
    transport = FakeTransport(
        {"/work-orders-today/": [{"id": 1, "status": "ARCHIVED"}, {"id": 2, "status": "locked"}]}
    )
    reader, store = _reader(tmp_path, transport)

    result = asyncio.run(reader.read(WORK_ORDERS))

    assert result.ok
    assert [record.id for record in result.records] == [2]
    assert store.get(WORK_ORDERS, 1) is None


def test_overtaken_response_is_not_applied(tmp_path: Path):
    async def scenario():
        gate = asyncio.Event()
        transport = SequencedTransport([(gate, [{"id": 1, "wo_number": "old"}]), (None, [{"id": 1, "wo_number": "new"}])])
        reader, store = _reader(tmp_path, transport)

        slow = asyncio.create_task(reader.read(WORK_ORDERS, force=True))
        await asyncio.sleep(0)
        fast = await reader.read(WORK_ORDERS, force=True)
        gate.set()
        return await slow, fast, store

    slow, fast, store = asyncio.run(scenario())

    assert fast.applied
    assert not slow.applied
    assert store.get(WORK_ORDERS, 1).wo_number == "new"


def test_read_after_mirror_ttl_issues_exactly_one_remote_call(tmp_path: Path):
    now = [1_000.0]
    mirror = CollectionMirror(tmp_path, ttl_seconds=8, clock=lambda: now[0])
    transport = FakeTransport({"/locates/": [{"id": 1}]})

    def fresh_reader():
        return CollectionReader(RecordStore(), transport, mirror, COLLECTIONS)

    asyncio.run(fresh_reader().read(LOCATES))
    now[0] += 7
    within = asyncio.run(fresh_reader().read(LOCATES))
    assert within.source == "mirror"
    assert len(transport.calls) == 1

    now[0] += 1
    expired = asyncio.run(fresh_reader().read(LOCATES))
    assert expired.source == "remote"
    assert len(transport.calls) == 2
