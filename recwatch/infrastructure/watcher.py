"""Live directory watcher feeding the dispatcher in watch mode.

watchdog delivers creation and rename notifications on its observer thread.
Each notification is settled on a timer thread (wait, re-stat, compare size)
before the path is queued, so neither the observer nor the dispatcher loop
ever sleeps on a single file. `produce()` drains the queue until stopped.
"""

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Callable, Iterator, Optional, Set

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from recwatch.domain.events import PathDropped
from recwatch.domain.models import CandidatePath, PathOrigin
from recwatch.infrastructure.event_bus import EventBus


class WatchTargetError(Exception):
    """The watch target is unusable or the observer could not attach/died."""


class _CreationHandler(FileSystemEventHandler):
    def __init__(self, source: "WatchSource"):
        super().__init__()
        self.source = source

    def on_created(self, event):
        if event.is_directory:
            return
        self.source.observe(os.fsdecode(event.src_path))

    def on_moved(self, event):
        # Renamed into (or within) the watched directory
        if event.is_directory:
            return
        self.source.observe(os.fsdecode(event.dest_path))


class WatchSource:
    """Unbounded path producer backed by a non-recursive watchdog observer.

    Args:
        target: Directory to watch. Must exist when start() is called.
        settle_delay_s: Wait before looking at a freshly observed file.
        settle_checks: How many looks a still-growing file gets before it is
            emitted anyway.
        accept: Optional predicate; paths it rejects are never scheduled.
        event_bus: Optional bus for PathDropped notifications.
        observer_factory: Builds the watchdog observer (replaced in tests).
    """

    def __init__(
        self,
        target: Path,
        settle_delay_s: float = 2.0,
        settle_checks: int = 3,
        accept: Optional[Callable[[Path], bool]] = None,
        event_bus: Optional[EventBus] = None,
        poll_interval_s: float = 0.5,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.target = Path(target).expanduser().absolute()
        self.settle_delay_s = settle_delay_s
        self.settle_checks = max(1, settle_checks)
        self.poll_interval_s = poll_interval_s
        self._accept = accept
        self._event_bus = event_bus
        self._observer_factory = observer_factory
        self._observer = None
        self._queue: "queue.Queue[CandidatePath]" = queue.Queue()
        self._timers: Set[threading.Timer] = set()
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self.logger = logging.getLogger(__name__)

    def start(self):
        if not self.target.exists():
            raise WatchTargetError(f"Watch target does not exist: {self.target}")
        if not self.target.is_dir():
            raise WatchTargetError(f"Watch target is not a directory: {self.target}")
        if not os.access(self.target, os.R_OK | os.X_OK):
            raise WatchTargetError(f"Watch target is not readable: {self.target}")

        observer = self._observer_factory()
        try:
            observer.schedule(_CreationHandler(self), str(self.target), recursive=False)
            observer.start()
        except (OSError, RuntimeError) as e:
            raise WatchTargetError(f"Cannot watch {self.target}: {e}") from e
        self._observer = observer
        self.logger.info(f"Watching started: {self.target}")

    def stop(self):
        self._stopped.set()
        with self._lock:
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
            self.logger.info(f"Watching stopped: {self.target}")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def observe(self, raw_path: str):
        """Entry point for watchdog notifications (observer thread)."""
        path = Path(raw_path).absolute()
        if not self._in_target(path):
            return
        if self._accept is not None and not self._accept(path):
            return
        self.logger.info(f"New file detected: {path}")
        self._schedule(path, self._size_of(path), self.settle_checks)

    def _in_target(self, path: Path) -> bool:
        # Non-recursive; macOS reports resolved paths (/private/var/...)
        if path.parent == self.target:
            return True
        try:
            return path.parent.resolve() == self.target.resolve()
        except OSError:
            return False

    @staticmethod
    def _size_of(path: Path) -> Optional[int]:
        try:
            return path.stat().st_size
        except OSError:
            return None

    def _schedule(self, path: Path, last_size: Optional[int], remaining: int):
        with self._lock:
            if self._stopped.is_set():
                return
            timer = threading.Timer(self.settle_delay_s, self._settle, args=(path, last_size, remaining))
            timer.daemon = True
            self._timers.add(timer)
        timer.start()

    def _settle(self, path: Path, last_size: Optional[int], remaining: int):
        with self._lock:
            self._timers.discard(threading.current_thread())
        if self._stopped.is_set():
            return

        size = self._size_of(path)
        if size is None:
            self.logger.info(f"File disappeared before settling (removed or renamed): {path}")
            if self._event_bus:
                self._event_bus.publish(PathDropped(path=path))
            return

        if size != last_size and remaining > 1:
            self.logger.debug(f"SETTLE_RECHECK: {path.name} size {last_size} -> {size}")
            self._schedule(path, size, remaining - 1)
            return

        self._queue.put(CandidatePath(path=path, origin=PathOrigin.EVENT))

    def produce(self, stop_event: threading.Event) -> Iterator[CandidatePath]:
        while not stop_event.is_set():
            if self._observer is not None and not self._observer.is_alive() and not self._stopped.is_set():
                raise WatchTargetError(f"Watcher for {self.target} stopped unexpectedly")
            try:
                candidate = self._queue.get(timeout=self.poll_interval_s)
            except queue.Empty:
                continue
            yield candidate

    @property
    def pending_settles(self) -> int:
        with self._lock:
            return len(self._timers)
