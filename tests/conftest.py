import os
import time
import threading
import pytest
import yaml
from pathlib import Path
from recwatch.config.models import AppConfig
from recwatch.domain.models import JobStatus, TranscodeJob, TranscodeResult
from recwatch.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "dest": str(tmp_path / "out"),
            "threads": 2,
            "crf": 22,
            "preset": "faster",
            "fps": 30,
            "mute": False,
            "pad": True,
            "trash": True,
            "batch_stamp": False,
            "notify": False,
            "extensions": [".mov", ".mp4", ".m4v", ".avi", ".mkv"],
            "debug": False,
        },
        watch={
            "settle_delay_s": 0.05,
            "settle_checks": 3,
            "poll_interval_s": 0.05,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "recwatch.yaml"

    content = {
        'general': {
            'dest': str(tmp_path / "converted"),
            'threads': 3,
            'crf': 28,
            'preset': 'medium',
            'fps': 0,
            'mute': True,
            'extensions': ['mov', 'MP4'],
        },
        'watch': {
            'settle_delay_s': 1.5,
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def recorded_events(event_bus):
    """Collects every event of the given types published on event_bus."""
    received = []
    lock = threading.Lock()

    def record(*event_types):
        for event_type in event_types:
            def _append(event):
                with lock:
                    received.append(event)
            event_bus.subscribe(event_type, _append)
        return received

    return record

# ============================================================================
# Fake transformer
# ============================================================================

class FakeFFmpegAdapter:
    """Stands in for FFmpegAdapter: records calls and tracks concurrency.

    `gate` (when given) blocks every job until set, `delay` sleeps per job,
    `fail_names` makes jobs for those file names fail.
    """

    def __init__(self, delay: float = 0.0, fail_names=(), gate: threading.Event = None):
        self.delay = delay
        self.fail_names = set(fail_names)
        self.gate = gate
        self.calls = []
        self.active = 0
        self.peak = 0
        self.started = threading.Event()
        self._lock = threading.Lock()

    def transcode(self, job: TranscodeJob) -> TranscodeResult:
        with self._lock:
            self.calls.append(job.input_path)
            self.active += 1
            self.peak = max(self.peak, self.active)
        self.started.set()
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            if self.delay:
                time.sleep(self.delay)
            if job.input_path.name in self.fail_names:
                job.status = JobStatus.FAILED
                job.error_message = "ffmpeg exited with code 1"
                return TranscodeResult(status=JobStatus.FAILED, diagnostic=job.error_message)
            output_path = job.output_dir / f"{job.input_path.stem}.mp4"
            job.status = JobStatus.COMPLETED
            job.output_path = output_path
            return TranscodeResult(status=JobStatus.COMPLETED, output_path=output_path)
        finally:
            with self._lock:
                self.active -= 1

@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpegAdapter()

# ============================================================================
# Filesystem helpers
# ============================================================================

@pytest.fixture
def make_video(tmp_path):
    """Creates a small fake video file and returns its path."""
    def _make(name: str, directory: Path = None, content: bytes = b"\x00" * 64, mtime: float = None) -> Path:
        directory = directory or tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(content)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path
    return _make

@pytest.fixture
def fake_ffmpeg_factory():
    """Builds FakeFFmpegAdapter instances with custom behaviour."""
    return FakeFFmpegAdapter
