"""Path producers for the dispatcher.

Both modes feed the same control loop: `BatchSource` yields a fixed, expanded
list of files; `recwatch.infrastructure.watcher.WatchSource` yields paths from
live filesystem events until stopped. Anything with a matching `produce()` works.
"""

import logging
import threading
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Protocol, Sequence

from recwatch.domain.events import DiscoveryFinished
from recwatch.domain.models import CandidatePath, PathOrigin
from recwatch.infrastructure.event_bus import EventBus
from recwatch.infrastructure.file_scanner import FileScanner


class PathSource(Protocol):
    def produce(self, stop_event: threading.Event) -> Iterator[CandidatePath]:
        ...


def filter_by_keywords(paths: Iterable[Path], keywords: Sequence[str]) -> List[Path]:
    """Keeps paths containing any keyword (case-insensitive); all paths if none given."""
    if not keywords:
        return list(paths)
    lowered = [k.lower() for k in keywords]
    return [p for p in paths if any(k in str(p).lower() for k in lowered)]


class BatchSource:
    """One-shot enumeration of batch inputs, evaluated once and replayable."""

    def __init__(
        self,
        patterns: Sequence[str],
        scanner: FileScanner,
        keywords: Sequence[str] = (),
        event_bus: Optional[EventBus] = None,
    ):
        self.patterns = list(patterns) or ["."]
        self.scanner = scanner
        self.keywords = list(keywords)
        self.event_bus = event_bus
        self._paths: Optional[List[Path]] = None
        self.logger = logging.getLogger(__name__)

    @property
    def paths(self) -> List[Path]:
        if self._paths is None:
            found = self.scanner.expand(self.patterns)
            self._paths = filter_by_keywords(found, self.keywords)
            if self.keywords:
                self.logger.info(
                    f"Discovery finished: found={len(found)}, matching keywords={len(self._paths)}"
                )
            else:
                self.logger.info(f"Discovery finished: found={len(found)}")
            if self.event_bus:
                self.event_bus.publish(DiscoveryFinished(files_found=len(self._paths), patterns=len(self.patterns)))
        return self._paths

    def produce(self, stop_event: threading.Event) -> Iterator[CandidatePath]:
        for path in self.paths:
            if stop_event.is_set():
                return
            yield CandidatePath(path=path, origin=PathOrigin.ENUMERATION)
