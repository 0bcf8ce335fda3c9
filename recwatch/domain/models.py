from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field

class JobStatus(str, Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class PathOrigin(str, Enum):
    EVENT = "event"              # filesystem notification (watch mode)
    ENUMERATION = "enumeration"  # pattern expansion (batch mode)

class CandidatePath(BaseModel):
    path: Path
    discovered_at: datetime = Field(default_factory=datetime.now)
    origin: PathOrigin = PathOrigin.ENUMERATION

class TranscodeJob(BaseModel):
    input_path: Path
    output_dir: Path
    sequence: int = 0
    status: JobStatus = JobStatus.PENDING
    output_path: Optional[Path] = None
    error_message: Optional[str] = None
    duration_seconds: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

class TranscodeResult(BaseModel):
    status: JobStatus
    output_path: Optional[Path] = None
    diagnostic: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.COMPLETED

class RunSummary(BaseModel):
    observed: int = 0
    ignored: int = 0
    denied: int = 0
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
