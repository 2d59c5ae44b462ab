"""Client-side polling of a batch until it reaches a terminal state."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable

from hubcontext.errors import BatchNotFound
from hubcontext.jobs.tracker import BatchStatusTracker
from hubcontext.models import BatchJob

log = logging.getLogger(__name__)

# Fetch errors worth another try; anything else propagates.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (sqlite3.OperationalError, ConnectionError, TimeoutError)


async def poll_batch(
    tracker: BatchStatusTracker,
    batch_id: str,
    *,
    interval: float = 5.0,
    max_interval: float = 60.0,
    backoff_factor: float = 2.0,
    timeout: float | None = None,
    on_update: Callable[[BatchJob], object] | None = None,
) -> BatchJob:
    """Poll ``get_status`` every ``interval`` seconds until the batch finishes.

    Transient fetch failures back off exponentially (capped at
    ``max_interval``); a successful fetch resets the delay. Raises
    TimeoutError once ``timeout`` seconds pass without a terminal status.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    delay = interval

    while True:
        try:
            job = tracker.get_status(batch_id)
        except TRANSIENT_ERRORS as exc:
            delay = min(max_interval, delay * backoff_factor)
            log.warning("Fetching batch %s failed (%s); retrying in %.1fs", batch_id, exc, delay)
        else:
            if job is None:
                raise BatchNotFound(batch_id)
            if on_update is not None:
                on_update(job)
            if job.status.is_terminal:
                return job
            delay = interval

        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise TimeoutError(f"Batch {batch_id} did not finish within {timeout}s")
            await asyncio.sleep(min(delay, remaining))
        else:
            await asyncio.sleep(delay)
