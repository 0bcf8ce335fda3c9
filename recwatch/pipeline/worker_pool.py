import concurrent.futures
import logging
import threading
from typing import Any, Callable, Optional


class PoolClosedError(RuntimeError):
    """Raised by submit() once the pool has been asked to drain."""


class WorkerPool:
    """Bounded FIFO executor for job bodies.

    submit() only enqueues; at most `max_workers` jobs run at once and the rest
    wait in submission order. shutdown() stops intake and, with wait=True,
    returns only after every queued and running job has finished.
    """

    def __init__(self, max_workers: int, thread_name_prefix: str = "recwatch-worker"):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=thread_name_prefix,
        )
        self._state = threading.Condition()
        self._accepting = True
        self._pending = 0  # queued + running
        self._running = 0
        self._peak_running = 0
        self.logger = logging.getLogger(__name__)

    def submit(self, fn: Callable[..., Any], *args: Any) -> concurrent.futures.Future:
        with self._state:
            if not self._accepting:
                raise PoolClosedError("Worker pool is shutting down")
            self._pending += 1
        try:
            future = self._executor.submit(self._run, fn, *args)
        except RuntimeError as e:
            self._finish_pending()
            raise PoolClosedError(str(e)) from e
        future.add_done_callback(self._log_failure)
        return future

    def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._state:
            self._running += 1
            self._peak_running = max(self._peak_running, self._running)
        try:
            return fn(*args)
        finally:
            with self._state:
                self._running -= 1
            self._finish_pending()

    def _finish_pending(self):
        with self._state:
            self._pending -= 1
            self._state.notify_all()

    def _log_failure(self, future: concurrent.futures.Future):
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.logger.error(f"Worker job failed with exception: {exc!r}")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Blocks until nothing is queued or running. False on timeout."""
        with self._state:
            return self._state.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self, wait: bool = True):
        with self._state:
            self._accepting = False
        self._executor.shutdown(wait=wait)

    @property
    def accepting(self) -> bool:
        with self._state:
            return self._accepting

    @property
    def running(self) -> int:
        with self._state:
            return self._running

    @property
    def pending(self) -> int:
        with self._state:
            return self._pending

    @property
    def peak_running(self) -> int:
        with self._state:
            return self._peak_running

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False
