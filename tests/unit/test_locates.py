from __future__ import annotations

from datetime import datetime, timedelta, timezone

from dashsync.common.models import LocateRecord
from dashsync.workflow.locates import (
    LocateStage,
    bucket_locates,
    classify_locate,
    expiration_time,
    format_time_remaining,
    is_emergency,
    is_expired,
    time_remaining,
)

CALLED_AT = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def _called(call_type: str = "Standard", **kwargs) -> LocateRecord:
    return LocateRecord(id=1, locates_called=True, call_type=call_type, called_at=CALLED_AT.isoformat(), **kwargs)


def test_uncalled_locate_is_pending():
    assert classify_locate(LocateRecord(id=1)) is LocateStage.PENDING


def test_standard_call_runs_two_days():
    record = _called()
    assert expiration_time(record) == CALLED_AT + timedelta(days=2)
    assert classify_locate(record, CALLED_AT + timedelta(days=1)) is LocateStage.IN_PROGRESS
    assert classify_locate(record, CALLED_AT + timedelta(days=2, seconds=1)) is LocateStage.COMPLETED


def test_emergency_call_runs_four_hours():
    record = _called("EMERGENCY")
    assert is_emergency(record.call_type)
    assert not is_expired(record, CALLED_AT + timedelta(hours=4))
    assert is_expired(record, CALLED_AT + timedelta(hours=4, seconds=1))


def test_timer_expired_flag_wins():
    assert is_expired(_called(timer_expired=True), CALLED_AT)


def test_incomplete_call_data_is_not_expired():
    record = LocateRecord(id=1, locates_called=True, call_type="Standard")
    assert not is_expired(record, CALLED_AT + timedelta(days=30))
    assert classify_locate(record) is LocateStage.IN_PROGRESS


def test_unknown_call_type_counts_as_expired():
    assert is_expired(_called("Routine"), CALLED_AT)


def test_format_time_remaining():
    assert format_time_remaining(timedelta(0)) == "EXPIRED"
    assert format_time_remaining(timedelta(days=1, hours=5)) == "1d 5h"
    assert format_time_remaining(timedelta(hours=3, minutes=12, seconds=9)) == "3h 12m"
    assert format_time_remaining(timedelta(minutes=4, seconds=30)) == "4m 30s"
    assert format_time_remaining(timedelta(seconds=42)) == "42s"


def test_time_remaining_for_records():
    assert time_remaining(_called("Emergency"), CALLED_AT + timedelta(hours=1)) == "3h 0m"
    assert time_remaining(_called(timer_expired=True), CALLED_AT) == "EXPIRED"
    assert time_remaining(LocateRecord(id=1), CALLED_AT) == ""


def test_bucket_locates_separates_recycle_bin():
    records = [
        LocateRecord(id=1),
        _called(),
        LocateRecord(id=3, locates_called=True, timer_expired=True),
        LocateRecord(id=4, is_deleted=True, locates_called=True),
    ]
    buckets = bucket_locates(records, CALLED_AT + timedelta(hours=1))

    assert buckets.counts() == {"PENDING": 1, "IN_PROGRESS": 1, "COMPLETED": 1, "DELETED": 1}
