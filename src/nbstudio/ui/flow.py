"""Pairing a remote call with a simulated progress bar.

:func:`run_with_progress` is the glue every creative mode uses on the client
side: the estimator starts as the request is issued, runs in parallel with
it, and is told to finish as soon as the request settles, whether it
succeeded or failed.  The caller gets the result (or the exception) only
after the bar has reached 100%, so the result view never appears mid-bar.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from nbstudio.core.phases import Phase
from nbstudio.core.progress import (
    DEFAULT_TICK_INTERVAL_MS,
    ProgressEstimator,
    ProgressSnapshot,
    Scheduler,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _wait_for_completion(estimator: ProgressEstimator, done: asyncio.Future) -> None:
    estimator.signal_real_completion()
    try:
        await done
    except asyncio.CancelledError:
        estimator.stop()
        raise


async def run_with_progress(
    phases: Iterable[Phase],
    operation: Awaitable[T],
    *,
    on_update: Callable[[ProgressSnapshot], None] | None = None,
    tick_interval_ms: float = DEFAULT_TICK_INTERVAL_MS,
    clock_ms: Callable[[], float] | None = None,
    scheduler: Scheduler | None = None,
) -> T:
    """Await ``operation`` while simulating progress over ``phases``.

    The completion signal is sent when the operation settles regardless of
    outcome, then this coroutine waits for the estimator to reach 100%
    before returning the result or re-raising the operation's exception.
    If this coroutine is cancelled, the estimator is stopped and no
    completion callback fires.

    Args:
        phases: Phase sequence for the creative mode.
        operation: The remote call to await.
        on_update: Observer receiving a snapshot on every recompute.
        tick_interval_ms: Recompute cadence.
        clock_ms: Clock override, mainly for tests.
        scheduler: Scheduler override, mainly for tests.

    Returns:
        Whatever ``operation`` returned.

    Raises:
        InvalidPhaseSequenceError: If ``phases`` is malformed.
        Exception: Whatever ``operation`` raised.
    """
    loop = asyncio.get_running_loop()
    done: asyncio.Future = loop.create_future()

    def _on_complete() -> None:
        if not done.done():
            done.set_result(None)

    estimator = ProgressEstimator(
        on_complete=_on_complete,
        on_update=on_update,
        clock_ms=clock_ms,
        scheduler=scheduler,
        tick_interval_ms=tick_interval_ms,
    )
    try:
        estimator.start(phases)
    except Exception:
        # The operation will never be awaited.
        if asyncio.iscoroutine(operation):
            operation.close()
        raise

    try:
        result = await operation
    except asyncio.CancelledError:
        logger.info("Operation cancelled; abandoning progress")
        estimator.stop()
        raise
    except Exception:
        logger.debug("Operation failed; finishing progress before re-raising")
        await _wait_for_completion(estimator, done)
        raise

    await _wait_for_completion(estimator, done)
    return result
