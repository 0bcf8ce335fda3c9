from enum import Enum
from pathlib import Path
from typing import Iterable, Union

HIDDEN_PREFIX = "."


class Classification(str, Enum):
    ELIGIBLE = "eligible"
    IGNORED = "ignored"


class PathClassifier:
    """Decides whether an observed path is a video the pipeline should convert.

    Hidden files are ignored first, then anything whose extension is not in the
    recognized set. Pure: no filesystem access, never raises.
    """

    def __init__(self, extensions: Iterable[str]):
        self.extensions = frozenset(
            (ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions
        )

    def classify(self, path: Union[str, Path]) -> Classification:
        name = Path(path).name
        if not name or name.startswith(HIDDEN_PREFIX):
            return Classification.IGNORED
        if Path(name).suffix.lower() not in self.extensions:
            return Classification.IGNORED
        return Classification.ELIGIBLE

    def is_eligible(self, path: Union[str, Path]) -> bool:
        return self.classify(path) is Classification.ELIGIBLE
