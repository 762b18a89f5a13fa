"""Background tasks and in-flight guards.

Some side effects (scheduling reminders after an approval) must never turn
a succeeded operation into a failed one. They are submitted here instead of
being called inline: the caller gets a future it may ignore, and a failure
is logged rather than raised.

``InFlightGuard`` refuses a second trigger of an action that has not
returned yet, the way a host disables a button while its call runs.
"""

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Generator, Hashable, Optional

from ..logger import logger
from .errors import ActionInProgressError


class BestEffortRunner:
    """Runs detached tasks whose failures are logged and never propagated."""

    def __init__(self, executor: Optional[Executor] = None, max_workers: int = 2):
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="best-effort"
        )
        self._owns_executor = executor is None

    def spawn(self, description: str, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """Submit ``fn(*args, **kwargs)`` and return its future.

        Args:
            description: Short label used in the failure log line
            fn: Callable to run
        """
        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._report(description, f))
        return future

    @staticmethod
    def _report(description: str, future: Future) -> None:
        if future.cancelled():
            logger.debug(f"Best-effort task cancelled: {description}")
            return
        error = future.exception()
        if error is not None:
            logger.opt(exception=error).warning(f"Best-effort task failed: {description}")

    def shutdown(self, wait: bool = True) -> None:
        """Stop the executor if this runner created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


class InFlightGuard:
    """Tracks which actions are running so a duplicate trigger is refused."""

    def __init__(self):
        self._busy: set[Hashable] = set()
        self._lock = threading.Lock()

    def is_busy(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._busy

    @contextmanager
    def hold(self, key: Hashable, label: Optional[str] = None) -> Generator[None, None, None]:
        """Mark ``key`` busy for the duration of the block.

        Raises:
            ActionInProgressError: ``key`` is already held
        """
        with self._lock:
            if key in self._busy:
                raise ActionInProgressError(label or str(key))
            self._busy.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._busy.discard(key)
