import glob
import logging
import os
from pathlib import Path
from typing import Generator, Iterable, List, Optional, Sequence


def dedupe_preserve_order(paths: Iterable[Path]) -> List[Path]:
    seen = set()
    deduped: List[Path] = []
    for path in paths:
        if path not in seen:
            seen.add(path)
            deduped.append(path)
    return deduped


class FileScanner:
    """Expands batch inputs (files, directories, glob patterns) into video paths."""

    def __init__(self, extensions: List[str], exclude_dirs: Optional[Sequence[Path]] = None):
        self.extensions = [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]
        # Output directories must not be re-scanned as input
        self.exclude_dirs = {Path(d).absolute() for d in (exclude_dirs or [])}
        self.logger = logging.getLogger(__name__)

    def scan(self, root_dir: Path) -> Generator[Path, None, None]:
        """Recursively yields recognized video files beneath root_dir."""
        for root, dirs, files in os.walk(str(root_dir)):
            root_path = Path(root)

            if root_path.absolute() in self.exclude_dirs:
                dirs[:] = []  # stop recursion into this branch
                continue

            # Ensure deterministic traversal: sort directories and files
            dirs[:] = sorted(d for d in dirs if (root_path / d).absolute() not in self.exclude_dirs)
            files.sort()

            for file_name in files:
                file_path = root_path / file_name
                if file_path.suffix.lower() not in self.extensions:
                    continue
                yield file_path.absolute()

    def expand_pattern(self, pattern: str) -> List[Path]:
        """One input argument -> absolute paths. Missing literals yield nothing."""
        expanded = os.path.expanduser(pattern)
        if os.path.isdir(expanded):
            return list(self.scan(Path(expanded)))
        if glob.has_magic(expanded):
            matches = sorted(glob.glob(expanded, recursive=True))
            return [Path(m).absolute() for m in matches if os.path.isfile(m)]
        if os.path.isfile(expanded):
            return [Path(expanded).absolute()]
        self.logger.warning(f"Input not found, skipping: {pattern}")
        return []

    def expand(self, patterns: Iterable[str]) -> List[Path]:
        """Expands every pattern; a pattern that fails is logged and skipped."""
        found: List[Path] = []
        for pattern in patterns:
            try:
                found.extend(self.expand_pattern(pattern))
            except (OSError, ValueError) as e:
                self.logger.warning(f"Failed to expand pattern '{pattern}': {e}")
        return dedupe_preserve_order(found)
