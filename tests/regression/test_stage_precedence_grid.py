import itertools

import pytest

from dashsync.common.models import WorkOrderRecord, WorkOrderStatus
from dashsync.workflow.classifier import Stage, bucket_work_orders, classify

STATUSES = (None, WorkOrderStatus.LOCKED, WorkOrderStatus.DELETED, WorkOrderStatus.HOLDING)
FLAGS = (False, True)


def _expected(is_deleted, status, rme_completed, wait_to_lock, holding_date, submitted) -> Stage:
    if is_deleted:
        return Stage.DELETED
    if rme_completed and status in (WorkOrderStatus.LOCKED, WorkOrderStatus.DELETED):
        return Stage.FINALIZED
    if wait_to_lock or holding_date:
        return Stage.HOLDING
    if submitted:
        return Stage.REPORT_SUBMITTED
    return Stage.REPORT_NEEDED


def _grid():
    for idx, (is_deleted, status, rme_completed, wait_to_lock, holding_date, submitted) in enumerate(
        itertools.product(FLAGS, STATUSES, FLAGS, FLAGS, FLAGS, FLAGS)
    ):
        yield WorkOrderRecord(
            id=idx,
            is_deleted=is_deleted,
            status=status,
            rme_completed=rme_completed,
            wait_to_lock=wait_to_lock,
            moved_to_holding_date="2026-10-01T00:00:00Z" if holding_date else None,
            tech_report_submitted=submitted,
        ), _expected(is_deleted, status, rme_completed, wait_to_lock, holding_date, submitted)


@pytest.mark.regression
def test_every_flag_combination_lands_in_exactly_one_stage():
    cases = list(_grid())
    for record, expected in cases:
        assert classify(record).stage is expected, record

    buckets = bucket_work_orders(record for record, _ in cases)
    assert sum(buckets.counts().values()) == len(cases)


@pytest.mark.regression
def test_classification_is_stable_across_repeated_runs():
    records = [record for record, _ in _grid()]
    first = [classify(record) for record in records]
    second = [classify(record) for record in reversed(records)]
    assert first == list(reversed(second))
