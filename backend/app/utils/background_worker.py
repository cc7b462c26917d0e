"""Thread-pool worker for detached side effects, with retries and dead-lettering.

Jobs run off the request path; a job that exhausts its attempts lands in
``dead_letter_queue`` and its future holds the exception.
"""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from collections import deque
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="notify")
_tasks: Dict[str, Future] = {}
# Finished jobs nobody waited on are pruned once the table grows past this
_MAX_TRACKED = 1000
# Each entry: (function name, args, kwargs, exception)
dead_letter_queue: deque[Tuple[str, tuple, dict, Exception]] = deque(maxlen=500)


def _run_with_retry(
    func: Callable[..., Any], *args: Any, retries: int = 3, backoff: int = 1, **kwargs: Any
) -> Any:
    """Execute ``func`` up to ``retries`` times with linear backoff."""

    attempts = max(1, retries)
    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            logger.error(
                "Background task %s failed on attempt %s/%s: %s", func.__name__, attempt, attempts, exc
            )
            if attempt == attempts:
                dead_letter_queue.append((func.__name__, args, kwargs, exc))
                raise
            time.sleep(backoff * attempt)


def enqueue(
    func: Callable[..., Any], *args: Any, retries: int = 3, backoff: int = 1, **kwargs: Any
) -> str:
    """Submit ``func`` to the worker and return a task id."""

    if len(_tasks) >= _MAX_TRACKED:
        for tid in [tid for tid, fut in _tasks.items() if fut.done()]:
            _tasks.pop(tid, None)
    task_id = str(uuid.uuid4())
    future = _executor.submit(_run_with_retry, func, *args, retries=retries, backoff=backoff, **kwargs)
    _tasks[task_id] = future
    return task_id


def wait(task_id: str, timeout: float | None = None) -> Any:
    """Block until ``task_id`` finishes and return its result (or raise)."""

    future = _tasks.pop(task_id, None)
    if future is None:
        raise KeyError(task_id)
    return future.result(timeout=timeout)

