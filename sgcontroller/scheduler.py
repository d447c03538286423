from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Dict
import logging
import threading

from .config import ControllerConfig

logger = logging.getLogger(__name__)


class ReconcileScheduler:
    """
    Bounded worker pool with per-key serialization.

    At most max_workers passes run at once, and at most one pass runs per key
    (security group ID) no matter which thread started it.
    """

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reconcile")
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, config: ControllerConfig) -> "ReconcileScheduler":
        return cls(max_workers=config.max_concurrent_reconciles)

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release(self, key: str, lock: threading.Lock) -> None:
        with self._locks_guard:
            lock.release()
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def serialized(self, key: str):
        lock = self._lock_for(key)
        if not lock.acquire(blocking=False):
            logger.debug(f"Waiting for in-flight reconcile of {key}")
            lock.acquire()
        try:
            yield
        finally:
            self._release(key, lock)

    def submit(self, key: str, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """Run fn in the pool while holding the lock for key."""
        def run():
            with self.serialized(key):
                return fn(*args, **kwargs)
        return self._executor.submit(run)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
