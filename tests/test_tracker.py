"""Tests for hubcontext.jobs.tracker."""

from __future__ import annotations

from datetime import timedelta

import pytest

from hubcontext.errors import BatchNotFound, StaleTransition
from hubcontext.jobs.tracker import BatchStatusTracker, check_transition
from hubcontext.models import BatchStatus, BatchUpdate


@pytest.fixture
def tracker(db_path):
    t = BatchStatusTracker(db_path)
    yield t
    t.close()


def _status(status: BatchStatus) -> BatchUpdate:
    return BatchUpdate(status=status)


def test_create_batch(tracker):
    job = tracker.create_batch({"source": "test"}, total_items=3)
    stored = tracker.get_status(job.batch_id)
    assert stored.status == BatchStatus.CREATED
    assert stored.total_items == 3
    assert stored.metadata == {"source": "test"}


def test_get_status_unknown_batch(tracker):
    assert tracker.get_status("missing") is None


def test_update_unknown_batch_raises(tracker):
    with pytest.raises(BatchNotFound):
        tracker.update_status("missing", _status(BatchStatus.RUNNING))


def test_forward_transitions_set_timestamps(tracker):
    job = tracker.create_batch()
    running = tracker.update_status(job.batch_id, _status(BatchStatus.RUNNING))
    assert running.started_at is not None
    assert running.completed_at is None

    done = tracker.update_status(job.batch_id, _status(BatchStatus.SUCCEEDED))
    assert done.status == BatchStatus.SUCCEEDED
    assert done.completed_at is not None
    assert done.started_at == running.started_at


def test_terminal_state_is_final(tracker):
    job = tracker.create_batch()
    for status in (BatchStatus.RUNNING, BatchStatus.SUCCEEDED, BatchStatus.FAILED):
        tracker.update_status(job.batch_id, _status(status))
    assert tracker.get_status(job.batch_id).status == BatchStatus.SUCCEEDED


def test_failed_batch_ignores_running(tracker):
    job = tracker.create_batch()
    tracker.update_status(job.batch_id, _status(BatchStatus.FAILED))

    result = tracker.update_status(job.batch_id, {"status": "running"})
    assert result.status == BatchStatus.FAILED
    assert tracker.get_status(job.batch_id).status == BatchStatus.FAILED


def test_terminal_batch_ignores_progress(tracker):
    job = tracker.create_batch(total_items=2)
    tracker.update_status(job.batch_id, _status(BatchStatus.SUCCEEDED))
    tracker.update_status(job.batch_id, BatchUpdate(processed_items=1))
    assert tracker.get_status(job.batch_id).processed_items == 0


def test_backward_transition_rejected(tracker):
    job = tracker.create_batch()
    tracker.update_status(job.batch_id, _status(BatchStatus.RUNNING))
    result = tracker.update_status(job.batch_id, _status(BatchStatus.CREATED))
    assert result.status == BatchStatus.RUNNING


def test_progress_and_metadata_merge(tracker):
    job = tracker.create_batch({"source": "cli"}, total_items=2)
    tracker.update_status(job.batch_id, _status(BatchStatus.RUNNING))
    updated = tracker.update_status(
        job.batch_id, BatchUpdate(processed_items=1, error_count=1, metadata={"note": "x"})
    )
    assert updated.status == BatchStatus.RUNNING
    assert (updated.processed_items, updated.error_count) == (1, 1)
    assert tracker.get_status(job.batch_id).metadata == {"source": "cli", "note": "x"}


def test_list_batches(tracker):
    a = tracker.create_batch()
    tracker.create_batch()
    tracker.update_status(a.batch_id, _status(BatchStatus.RUNNING))

    assert len(tracker.list_batches()) == 2
    assert [j.batch_id for j in tracker.list_batches(BatchStatus.RUNNING)] == [a.batch_id]


def test_purge_finished(tracker):
    done = tracker.create_batch()
    tracker.update_status(done.batch_id, _status(BatchStatus.SUCCEEDED))
    active = tracker.create_batch()

    assert tracker.purge_finished(timedelta(days=1)) == 0
    assert tracker.purge_finished(timedelta(seconds=-1)) == 1
    assert tracker.get_status(done.batch_id) is None
    assert tracker.get_status(active.batch_id) is not None


def test_concurrent_writer_does_not_regress(db_path, tracker):
    """A second tracker on the same database sees the first one's terminal state."""
    job = tracker.create_batch()
    other = BatchStatusTracker(db_path)
    try:
        tracker.update_status(job.batch_id, _status(BatchStatus.RUNNING))
        other.update_status(job.batch_id, _status(BatchStatus.FAILED))
        tracker.update_status(job.batch_id, _status(BatchStatus.RUNNING))
    finally:
        other.close()
    assert tracker.get_status(job.batch_id).status == BatchStatus.FAILED


@pytest.mark.parametrize(
    "current,target",
    [
        (BatchStatus.RUNNING, BatchStatus.CREATED),
        (BatchStatus.SUCCEEDED, BatchStatus.FAILED),
        (BatchStatus.FAILED, BatchStatus.RUNNING),
        (BatchStatus.SUCCEEDED, BatchStatus.SUCCEEDED),
    ],
)
def test_check_transition_rejects(current, target):
    with pytest.raises(StaleTransition):
        check_transition("b-1", current, target)


def test_check_transition_allows_forward():
    check_transition("b-1", BatchStatus.CREATED, BatchStatus.FAILED)
    check_transition("b-1", BatchStatus.RUNNING, BatchStatus.RUNNING)
