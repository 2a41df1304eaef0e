"""Bounded admission of concurrent build tasks."""
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, TypeVar
import threading

T = TypeVar("T")


class ConcurrencyLimiter:
    """Gate that runs at most ``limit`` tasks at once.

    Tasks wait in submission order and start as soon as a slot frees up. Each
    task spends its time waiting on an external process, so worker threads are
    enough; no CPU parallelism is needed.
    """

    def __init__(self, limit: int) -> None:
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            raise ValueError(f"Concurrency limit must be a positive integer, got {limit!r}")
        self.limit = limit
        self._executor = ThreadPoolExecutor(max_workers=limit, thread_name_prefix="gobuilder")
        self._futures: List[Future[Any]] = []
        self._lock = threading.Lock()

    def submit(self, task: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        with self._lock:
            future = self._executor.submit(task, *args, **kwargs)
            self._futures.append(future)
        return future

    __call__ = submit

    def cancel_pending(self) -> int:
        """Cancel every task that has not started yet; return how many were cancelled."""
        with self._lock:
            futures = list(self._futures)
        return sum(1 for future in futures if future.cancel())

    def close(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "ConcurrencyLimiter":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def limit(n: int) -> ConcurrencyLimiter:
    return ConcurrencyLimiter(n)
