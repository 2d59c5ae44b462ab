"""Tests for hubcontext.jobs.poller."""

from __future__ import annotations

import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from hubcontext.errors import BatchNotFound
from hubcontext.jobs.poller import poll_batch
from hubcontext.models import BatchJob, BatchStatus


def _job(status: BatchStatus) -> BatchJob:
    return BatchJob(batch_id="b-1", status=status)


@pytest.fixture
def sleeps():
    """Record the delays poll_batch sleeps for without actually waiting."""
    delays: list[float] = []

    async def _sleep(delay):
        delays.append(delay)

    with patch("hubcontext.jobs.poller.asyncio.sleep", _sleep):
        yield delays


@pytest.mark.asyncio
async def test_polls_until_terminal(sleeps):
    tracker = MagicMock()
    tracker.get_status.side_effect = [
        _job(BatchStatus.CREATED),
        _job(BatchStatus.RUNNING),
        _job(BatchStatus.SUCCEEDED),
    ]
    seen = []

    job = await poll_batch(tracker, "b-1", interval=1.0, on_update=lambda j: seen.append(j.status))

    assert job.status == BatchStatus.SUCCEEDED
    assert seen == [BatchStatus.CREATED, BatchStatus.RUNNING, BatchStatus.SUCCEEDED]
    assert sleeps == [1.0, 1.0]


@pytest.mark.asyncio
async def test_transient_errors_back_off_then_reset(sleeps):
    tracker = MagicMock()
    tracker.get_status.side_effect = [
        sqlite3.OperationalError("database is locked"),
        sqlite3.OperationalError("database is locked"),
        sqlite3.OperationalError("database is locked"),
        _job(BatchStatus.RUNNING),
        _job(BatchStatus.FAILED),
    ]

    job = await poll_batch(tracker, "b-1", interval=1.0, max_interval=3.0, backoff_factor=2.0)

    assert job.status == BatchStatus.FAILED
    assert sleeps == [2.0, 3.0, 3.0, 1.0]


@pytest.mark.asyncio
async def test_missing_batch_raises(sleeps):
    tracker = MagicMock()
    tracker.get_status.return_value = None
    with pytest.raises(BatchNotFound):
        await poll_batch(tracker, "b-1")


@pytest.mark.asyncio
async def test_other_errors_propagate(sleeps):
    tracker = MagicMock()
    tracker.get_status.side_effect = ValueError("bad row")
    with pytest.raises(ValueError):
        await poll_batch(tracker, "b-1")


@pytest.mark.asyncio
async def test_timeout(sleeps):
    tracker = MagicMock()
    tracker.get_status.return_value = _job(BatchStatus.RUNNING)
    with pytest.raises(TimeoutError):
        await poll_batch(tracker, "b-1", interval=0.01, timeout=0.0)
