"""Domain events for the watch-and-dispatch pipeline.

Events flow through the EventBus and decouple the orchestrator from the
collaborators that report outcomes (console reporter, desktop notifier).

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from pydantic import BaseModel
from .models import TranscodeJob


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class JobEvent(Event):
    """Base class for events related to a specific transcode job."""

    job: TranscodeJob


class JobQueued(JobEvent):
    """Emitted when a claimed job has been handed to the worker pool."""

    pass


class JobStarted(JobEvent):
    """Emitted when a worker slot picks the job up."""

    pass


class JobCompleted(JobEvent):
    """Emitted when ffmpeg exited with status zero and the output is in place."""

    pass


class JobFailed(JobEvent):
    """Emitted when ffmpeg failed, could not be launched, or the job body raised."""

    error_message: str


class ClaimDenied(Event):
    """Emitted when a path is observed while a job for it is still in flight."""

    path: Path


class PathDropped(Event):
    """Emitted by the watcher when an observed file vanished before settling."""

    path: Path


class DiscoveryFinished(Event):
    """Emitted after batch pattern expansion."""

    files_found: int
    patterns: int = 1


class RequestShutdown(Event):
    """Stop producing new paths and drain the worker pool."""

    pass


class ProcessingFinished(Event):
    """Emitted once the source is exhausted (or stopped) and the pool has drained."""

    pass
