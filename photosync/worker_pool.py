import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class BoundedExecutor:
    """
    Runs tasks on a fixed number of worker threads.

    submit() blocks while `limit` tasks are already in flight, so a producer
    can feed it from a lazy stream without queueing everything up front.
    drain() waits for every submitted task and returns their results in
    submission order; a task that raised contributes its exception object
    instead of re-raising it.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._slots = threading.BoundedSemaphore(limit)
        self._executor = ThreadPoolExecutor(max_workers=limit, thread_name_prefix="photosync")
        self._futures: List[Future] = []

    def _run(self, fn: Callable[..., Any], args) -> Any:
        try:
            return fn(*args)
        finally:
            self._slots.release()

    def submit(self, fn: Callable[..., Any], *args) -> Future:
        self._slots.acquire()
        try:
            future = self._executor.submit(self._run, fn, args)
        except BaseException:
            self._slots.release()
            raise
        self._futures.append(future)
        return future

    def drain(self) -> List[Any]:
        results = []
        for future in self._futures:
            try:
                results.append(future.result())
            except Exception as e:
                logger.debug("Task failed: %r", e)
                results.append(e)
        self._futures = []
        return results

    def shutdown(self):
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False
