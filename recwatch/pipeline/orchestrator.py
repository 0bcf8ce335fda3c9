"""Dispatcher for the watch-and-convert pipeline.

Routes every path a source produces through classification, the job ledger
and the worker pool, and publishes each job's outcome on the EventBus.

Per observed path:
    observed -> ignored                      (classifier rejects it)
    observed -> denied                       (a job for the path is in flight)
    observed -> queued -> running -> completed | failed

The ledger claim taken at dispatch time is released by the job body on every
exit path, before the outcome is published, so a path re-observed after its job
finished is dispatched as a brand-new job. Nothing else is remembered per path.

The same loop serves both modes; only the source differs (see
`pipeline/sources.py`). A single stop signal ends intake, after which queued and
running jobs are drained before `run()` returns.
"""

import itertools
import logging
import threading
import time
from pathlib import Path
from typing import Optional

from recwatch.config.models import AppConfig
from recwatch.config.output_dirs import ensure_output_dir
from recwatch.domain.events import (
    ClaimDenied, JobCompleted, JobFailed, JobQueued, JobStarted, ProcessingFinished, RequestShutdown,
)
from recwatch.domain.models import CandidatePath, JobStatus, RunSummary, TranscodeJob
from recwatch.infrastructure.event_bus import EventBus
from recwatch.infrastructure.ffmpeg import FFmpegAdapter
from recwatch.infrastructure.trash import TrashError, TrashService
from recwatch.pipeline.classifier import PathClassifier
from recwatch.pipeline.ledger import Claim, JobLedger
from recwatch.pipeline.sources import PathSource
from recwatch.pipeline.worker_pool import PoolClosedError, WorkerPool


class Orchestrator:
    """Routes source paths to bounded ffmpeg jobs.

    Args:
        config: AppConfig built once by the CLI.
        event_bus: EventBus for job lifecycle events.
        ffmpeg_adapter: Runs one conversion per job.
        trash_service: Moves converted sources to the trash (when enabled).
        classifier: Defaults to one built from config.general.extensions.
        ledger: Defaults to a fresh JobLedger.
        worker_pool: Defaults to a WorkerPool of config.general.threads slots.

    One orchestrator serves one run: the pool is drained and closed when
    `run()` returns.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        ffmpeg_adapter: FFmpegAdapter,
        trash_service: Optional[TrashService] = None,
        classifier: Optional[PathClassifier] = None,
        ledger: Optional[JobLedger] = None,
        worker_pool: Optional[WorkerPool] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.ffmpeg_adapter = ffmpeg_adapter
        self.trash_service = trash_service
        self.classifier = classifier or PathClassifier(config.general.extensions)
        self.ledger = ledger or JobLedger()
        self.worker_pool = worker_pool or WorkerPool(config.general.threads)
        self.logger = logging.getLogger(__name__)

        self._stop_event = threading.Event()
        self._sequence = itertools.count(1)
        self._stats_lock = threading.Lock()
        self._summary = RunSummary()

        self.event_bus.subscribe(RequestShutdown, self._on_shutdown_request)

    def _on_shutdown_request(self, event: RequestShutdown):
        self.request_shutdown()

    def request_shutdown(self):
        if not self._stop_event.is_set():
            self.logger.info("Shutdown requested - no new files will be accepted, draining queued jobs")
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def summary(self) -> RunSummary:
        with self._stats_lock:
            return self._summary.model_copy()

    def _count(self, field: str):
        with self._stats_lock:
            setattr(self._summary, field, getattr(self._summary, field) + 1)

    def dispatch(self, candidate: CandidatePath, output_dir: Optional[Path] = None) -> Optional[TranscodeJob]:
        """Classifies, claims and queues one observed path.

        Returns the queued job, or None when the path was ignored, already in
        flight, or could not be queued. Never waits for a free worker slot.
        """
        path = candidate.path
        self._count("observed")

        if not self.classifier.is_eligible(path):
            self.logger.debug(f"SKIP_IGNORED: {path}")
            self._count("ignored")
            return None

        claim = self.ledger.try_claim(path)
        if claim is None:
            self.logger.info(f"Already in progress, skipping: {path}")
            self._count("denied")
            self.event_bus.publish(ClaimDenied(path=path))
            return None

        try:
            # Watch mode resolves per job so the day stamp rolls over
            job_dir = output_dir if output_dir is not None else ensure_output_dir(self.config.general)
        except OSError as e:
            claim.release()
            self.logger.error(f"Failed to create output directory for {path.name}: {e}")
            self._count("failed")
            return None

        job = TranscodeJob(
            input_path=claim.path,
            output_dir=job_dir,
            sequence=next(self._sequence),
            status=JobStatus.QUEUED,
        )
        self.event_bus.publish(JobQueued(job=job))
        try:
            self.worker_pool.submit(self._process_job, job, claim)
        except PoolClosedError:
            claim.release()
            job.status = JobStatus.FAILED
            job.error_message = "Not started: shutting down"
            self.logger.warning(f"Not queued (shutting down): {path}")
            self._count("failed")
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
            return None

        self._count("dispatched")
        return job

    def _process_job(self, job: TranscodeJob, claim: Claim):
        """Job body run on a worker thread."""
        with claim:
            self._run_job(job)
        self._report(job)

    def _run_job(self, job: TranscodeJob):
        filename = job.input_path.name
        debug = self.config.general.debug
        start_time = time.monotonic()
        if debug:
            self.logger.info(f"JOB_START: #{job.sequence} {filename} (thread {threading.get_ident()})")

        try:
            job.status = JobStatus.PROCESSING
            self.event_bus.publish(JobStarted(job=job))
            self.logger.info(f"▶ Converting #{job.sequence}: {job.input_path}")

            result = self.ffmpeg_adapter.transcode(job)

            if result.succeeded:
                job.status = JobStatus.COMPLETED
                job.output_path = result.output_path
                self._trash_source(job)
            else:
                job.status = JobStatus.FAILED
                job.error_message = result.diagnostic or job.error_message or "Conversion failed"
        except Exception as e:
            # Keep the worker alive; the job is simply failed
            self.logger.error(f"Exception processing {filename}: {e}")
            job.status = JobStatus.FAILED
            job.error_message = f"Exception: {e}"

        if debug:
            elapsed = time.monotonic() - start_time
            self.logger.info(f"JOB_END: #{job.sequence} {filename} status={job.status.value} elapsed={elapsed:.2f}s")

    def _trash_source(self, job: TranscodeJob):
        if not self.config.general.trash or self.trash_service is None:
            return
        try:
            self.trash_service.move_to_trash(job.input_path)
            self.logger.debug(f"TRASHED: {job.input_path}")
        except TrashError as e:
            # Conversion already succeeded; leave the source where it is
            self.logger.warning(f"🗑 Failed to move to trash: {job.input_path} -> {e}")

    def _report(self, job: TranscodeJob):
        if job.status == JobStatus.COMPLETED:
            self._count("succeeded")
            self.event_bus.publish(JobCompleted(job=job))
        else:
            self._count("failed")
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message or "Conversion failed"))

    def drain(self):
        """Closes the pool to new jobs and waits for queued and running ones."""
        pending = self.worker_pool.pending
        if pending:
            self.logger.info(f"Waiting for {pending} queued/running job(s) to finish...")
        self.worker_pool.shutdown(wait=True)

    def run(self, source: PathSource, output_dir: Optional[Path] = None) -> RunSummary:
        """Feeds every produced path to dispatch() until the source ends or stop is requested.

        `output_dir` fixes the directory for all jobs (batch mode); without it
        each job resolves its own (watch mode).
        """
        self.logger.info(
            f"Dispatcher started: concurrency={self.worker_pool.max_workers}, "
            f"output={output_dir if output_dir is not None else 'per job'}"
        )
        try:
            for candidate in source.produce(self._stop_event):
                self.dispatch(candidate, output_dir)
                if self._stop_event.is_set():
                    break
        except KeyboardInterrupt:
            self.logger.info("Ctrl+C detected - stopping intake and draining queued jobs...")
            self._stop_event.set()
            raise
        finally:
            self.drain()
            self.event_bus.publish(ProcessingFinished())

        summary = self.summary
        if summary.observed == 0:
            self.logger.info("No files to convert.")
        else:
            self.logger.info(
                f"✅ All done: converted={summary.succeeded}, failed={summary.failed}, "
                f"ignored={summary.ignored}, already_in_progress={summary.denied}"
            )
        return summary
