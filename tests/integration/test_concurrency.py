import os
import threading
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

from recwatch.domain.events import ClaimDenied, JobCompleted, JobFailed
from recwatch.domain.models import CandidatePath, PathOrigin
from recwatch.infrastructure.ffmpeg import FFmpegAdapter
from recwatch.infrastructure.file_scanner import FileScanner
from recwatch.pipeline.orchestrator import Orchestrator
from recwatch.pipeline.sources import BatchSource


def test_duplicate_event_while_in_flight_is_denied(
    sample_config, event_bus, recorded_events, fake_ffmpeg_factory, make_video, tmp_path
):
    """A second notification for a file still converting must not start a second ffmpeg."""
    denied = recorded_events(ClaimDenied)
    gate = threading.Event()
    adapter = fake_ffmpeg_factory(gate=gate)
    clip = make_video("clip.mov")
    orchestrator = Orchestrator(config=sample_config, event_bus=event_bus, ffmpeg_adapter=adapter)
    candidate = CandidatePath(path=clip, origin=PathOrigin.EVENT)

    first = orchestrator.dispatch(candidate, tmp_path / "out")
    assert adapter.started.wait(timeout=5)
    second = orchestrator.dispatch(candidate, tmp_path / "out")
    gate.set()
    orchestrator.drain()

    assert first is not None
    assert second is None
    assert adapter.calls == [clip]
    assert [e.path for e in denied] == [clip]
    summary = orchestrator.summary
    assert summary.denied == 1
    assert summary.dispatched == 1
    assert summary.succeeded == 1


def test_concurrent_claims_for_same_path_dispatch_once(
    sample_config, event_bus, fake_ffmpeg_factory, make_video, tmp_path
):
    gate = threading.Event()
    adapter = fake_ffmpeg_factory(gate=gate)
    clip = make_video("clip.mov")
    orchestrator = Orchestrator(config=sample_config, event_bus=event_bus, ffmpeg_adapter=adapter)
    barrier = threading.Barrier(8)
    results = []

    def observe():
        barrier.wait()
        results.append(orchestrator.dispatch(CandidatePath(path=clip, origin=PathOrigin.EVENT), tmp_path / "out"))

    threads = [threading.Thread(target=observe) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    gate.set()
    orchestrator.drain()

    assert sum(1 for r in results if r is not None) == 1
    assert orchestrator.summary.denied == 7
    assert adapter.calls == [clip]


def test_batch_run_respects_concurrency_limit(
    sample_config, event_bus, recorded_events, fake_ffmpeg_factory, make_video, tmp_path
):
    """Five inputs with two slots: never more than two ffmpeg processes at once."""
    sample_config.general.threads = 2
    finished = recorded_events(JobCompleted, JobFailed)
    adapter = fake_ffmpeg_factory(delay=0.05)
    inputs = tmp_path / "inputs"
    clips = [make_video(f"clip{i}.mov", directory=inputs) for i in range(5)]
    orchestrator = Orchestrator(config=sample_config, event_bus=event_bus, ffmpeg_adapter=adapter)
    source = BatchSource([str(inputs)], FileScanner(sample_config.general.extensions), event_bus=event_bus)

    summary = orchestrator.run(source, output_dir=tmp_path / "out")

    assert adapter.peak <= 2
    assert orchestrator.worker_pool.peak_running <= 2
    assert sorted(adapter.calls) == sorted(clips)
    assert len(finished) == 5
    assert all(e.job.is_terminal for e in finished)
    assert summary.succeeded == 5


def test_distinct_files_run_in_parallel(sample_config, event_bus, fake_ffmpeg_factory, make_video, tmp_path):
    sample_config.general.threads = 2
    gate = threading.Event()
    adapter = fake_ffmpeg_factory(gate=gate)
    orchestrator = Orchestrator(config=sample_config, event_bus=event_bus, ffmpeg_adapter=adapter)

    for name in ("a.mov", "b.mov"):
        orchestrator.dispatch(CandidatePath(path=make_video(name), origin=PathOrigin.EVENT), tmp_path / "out")
    for _ in range(500):
        if adapter.active == 2:
            break
        threading.Event().wait(0.01)
    running = adapter.active
    gate.set()
    orchestrator.drain()

    assert running == 2
    assert orchestrator.summary.succeeded == 2


def test_slow_job_does_not_block_intake(sample_config, event_bus, fake_ffmpeg_factory, make_video, tmp_path):
    """dispatch() returns immediately even when every slot is busy."""
    sample_config.general.threads = 1
    gate = threading.Event()
    adapter = fake_ffmpeg_factory(gate=gate)
    orchestrator = Orchestrator(config=sample_config, event_bus=event_bus, ffmpeg_adapter=adapter)
    trash = MagicMock()
    orchestrator.trash_service = trash

    jobs = [
        orchestrator.dispatch(CandidatePath(path=make_video(f"{i}.mov")), tmp_path / "out")
        for i in range(4)
    ]
    queued = orchestrator.worker_pool.pending
    gate.set()
    orchestrator.drain()

    assert all(job is not None for job in jobs)
    assert queued == 4
    assert trash.move_to_trash.call_count == 4


def test_equal_mtime_sources_keep_losing_source(sample_config, event_bus, recorded_events, make_video, tmp_path):
    """Two recordings stamped in the same second map to one output name.

    The first finished encode takes the name; the other job fails and its
    source is not trashed.
    """
    completed = recorded_events(JobCompleted)
    failed = recorded_events(JobFailed)
    mtime = datetime(2024, 3, 1, 14, 5, 9).timestamp()
    sources = [make_video(name, directory=tmp_path / "src", mtime=mtime) for name in ("a.mov", "b.mov")]
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    trash = MagicMock()
    both_encoding = threading.Barrier(2)

    def fake_run(cmd, **kwargs):
        dest = Path(cmd[-1])
        if "-n" in cmd and dest.exists():
            return MagicMock(returncode=1, stdout="already exists. Exiting.\n")
        dest.write_bytes(b"encoded " + os.path.basename(cmd[cmd.index("-i") + 1]).encode())
        both_encoding.wait(timeout=5)
        return MagicMock(returncode=0, stdout="")

    orchestrator = Orchestrator(
        config=sample_config, event_bus=event_bus,
        ffmpeg_adapter=FFmpegAdapter(sample_config), trash_service=trash,
    )
    with patch("recwatch.infrastructure.ffmpeg.subprocess.run", side_effect=fake_run):
        for src in sources:
            orchestrator.dispatch(CandidatePath(path=src), out_dir)
        orchestrator.drain()

    assert len(completed) == 1
    assert len(failed) == 1
    winner = completed[0].job
    loser = failed[0].job
    assert winner.output_path.exists()
    assert winner.output_path.read_bytes() == f"encoded {winner.input_path.name}".encode()
    trash.move_to_trash.assert_called_once_with(winner.input_path)
    assert loser.input_path.exists()
    assert [p.name for p in out_dir.iterdir()] == ["2024-03-01_14-05-09.mp4"]
