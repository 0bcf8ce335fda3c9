import os
import threading
from pathlib import Path
from typing import List, Optional, Set, Union


def _key(path: Union[str, Path]) -> Path:
    return Path(os.path.abspath(path))


class Claim:
    """Exclusive right to run a job for one path; released exactly once.

    Use as a context manager around the whole job body so the release happens
    however the body exits.
    """

    def __init__(self, ledger: "JobLedger", path: Path):
        self._ledger = ledger
        self.path = path
        self._released = False
        self._lock = threading.Lock()

    def release(self):
        with self._lock:
            if self._released:
                return
            self._released = True
        self._ledger.release(self.path)

    @property
    def released(self) -> bool:
        return self._released

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


class JobLedger:
    """Tracks in-flight input paths; at most one active job per path."""

    def __init__(self):
        self._active: Set[Path] = set()
        self._lock = threading.Lock()

    def try_claim(self, path: Union[str, Path]) -> Optional[Claim]:
        key = _key(path)
        with self._lock:
            if key in self._active:
                return None
            self._active.add(key)
        return Claim(self, key)

    def release(self, path: Union[str, Path]):
        with self._lock:
            self._active.discard(_key(path))

    def is_claimed(self, path: Union[str, Path]) -> bool:
        with self._lock:
            return _key(path) in self._active

    def active_paths(self) -> List[Path]:
        with self._lock:
            return sorted(self._active)

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)
