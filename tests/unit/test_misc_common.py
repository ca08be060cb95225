import logging
import random
from datetime import datetime, timezone

import pytest

from dashsync.common.deterministic import stable_sorted
from dashsync.common.ids import generate_report_id, generate_session_id
from dashsync.common.logging import JsonLineFormatter, SessionFilter, log_event
from dashsync.common.models import Actor, LocateRecord, WorkOrderRecord, WorkOrderStatus
from dashsync.common.time_utils import parse_timestamp
from dashsync.sync.transport import record_path, unwrap_list


def test_stable_sorted_orders_values():
    assert stable_sorted([{"k": 2}, {"k": 1}], key=lambda item: item["k"]) == [{"k": 1}, {"k": 2}]


def test_generate_session_id_prefix():
    assert generate_session_id().startswith("session-")


def test_generate_report_id_format():
    report_id = generate_report_id(datetime(2026, 3, 1, tzinfo=timezone.utc), random.Random(7))
    prefix, year, suffix = report_id.split("-")
    assert (prefix, year) == ("RME", "2026")
    assert len(suffix) == 9
    assert suffix.isupper() or suffix.isdigit()
    assert suffix.isalnum()


def test_parse_timestamp_variants():
    assert parse_timestamp("2026-10-19T10:00:00Z") == datetime(2026, 10, 19, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2026-10-19T10:00:00") == datetime(2026, 10, 19, 10, tzinfo=timezone.utc)
    assert parse_timestamp("") is None
    assert parse_timestamp("yesterday") is None


def test_work_order_from_payload_coerces_fields():
    record = WorkOrderRecord.from_payload(
        {"id": 3, "status": "locked", "rme_completed": 1, "is_seen": None, "surprise": "ignored"}
    )
    assert record.status is WorkOrderStatus.LOCKED
    assert record.rme_completed is True
    assert record.is_seen is False
    assert record.to_dict()["status"] == "LOCKED"


def test_work_order_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        WorkOrderRecord.from_payload({"id": 3, "status": "ARCHIVED"})


def test_locate_created_date_fallback():
    record = LocateRecord.from_payload({"id": 1, "created_date": "2026-10-19T08:00:00Z"})
    assert record.created_at == "2026-10-19T08:00:00Z"


def test_actor_from_identity_defaults():
    assert Actor.from_identity(None) == Actor()
    actor = Actor.from_identity({"full_name": "Dana Reyes", "email": "dana@example.com", "id": 42})
    assert actor == Actor(name="Dana Reyes", email="dana@example.com", id="42")


def test_transport_helpers():
    assert record_path("/locates/", 5) == "/locates/5/"
    assert unwrap_list({"data": [{"id": 1}]}) == [{"id": 1}]
    assert unwrap_list({"results": []}) == []


def test_json_formatter_includes_session_id():
    record = logging.LogRecord("dashsync.test", logging.INFO, __file__, 1, "hello", None, None)
    record.event = "FETCH_END"
    SessionFilter("session-1").filter(record)

    line = JsonLineFormatter().format(record)
    assert '"session_id": "session-1"' in line
    assert '"event": "FETCH_END"' in line
    assert '"message": "hello"' in line


def test_log_event_passes_fields(caplog):
    logger = logging.getLogger("dashsync.test-log-event")
    with caplog.at_level(logging.INFO, logger="dashsync.test-log-event"):
        log_event(logger, "fetch end", component="reader", status="ok")
    assert caplog.records[0].component == "reader"
