"""
Bounded parallel execution of independent store calls.

Per-layer and per-session work is independent, so it runs on a small thread
pool. The first failure wins: it is raised and queued work is cancelled.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Sequence, TypeVar

from .errors import RequestCancelled, TransientError

__all__ = ["run_bounded"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How often a wait wakes up to look at the cancel event
CANCEL_POLL_S = 0.05


def run_bounded(tasks: Sequence[Callable[[], T]], *, max_workers: int,
                deadline: Optional[float] = None,
                cancel: Optional[threading.Event] = None) -> List[T]:
    """
    Run tasks with at most max_workers in flight.

    Args:
        tasks: Zero-argument callables
        max_workers: Concurrency limit
        deadline: time.monotonic() value after which outstanding work is abandoned
        cancel: Event that abandons outstanding work once set

    Returns:
        Task results in the order the tasks were given

    Raises:
        Exception: The first exception raised by a task (in task order among
            those that failed before the others were cancelled)
        TransientError: If the deadline passes before all tasks finish
        RequestCancelled: If cancel is set before all tasks finish

    Note:
        Tasks already running when a failure, timeout or cancellation occurs cannot be
        interrupted; they finish in the background and their results are
        discarded. Tasks still queued are cancelled.
    """
    if not tasks:
        return []

    executor = ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(tasks))),
        thread_name_prefix="registry-push",
    )
    try:
        futures = [executor.submit(task) for task in tasks]
        done, pending = _wait(futures, deadline, cancel)

        for future in futures:
            if future in done and future.exception() is not None:
                if pending:
                    logger.debug(f"Cancelling {len(pending)} outstanding tasks after failure")
                raise future.exception()

        if pending and cancel is not None and cancel.is_set():
            raise RequestCancelled(f"cancelled with {len(pending)} of {len(futures)} tasks outstanding")
        if pending:
            raise TransientError(f"deadline exceeded with {len(pending)} of {len(futures)} tasks outstanding")

        return [future.result() for future in futures]
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _wait(futures, deadline: Optional[float], cancel: Optional[threading.Event]):
    """Wait for the first failure, completion of all futures, the deadline or cancellation."""
    while True:
        timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
        if cancel is None:
            return wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)

        step = CANCEL_POLL_S if timeout is None else min(timeout, CANCEL_POLL_S)
        done, pending = wait(futures, timeout=step, return_when=FIRST_EXCEPTION)
        failed = any(future.exception() is not None for future in done)
        out_of_time = deadline is not None and time.monotonic() >= deadline
        if not pending or failed or out_of_time or cancel.is_set():
            return done, pending
