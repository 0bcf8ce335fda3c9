import logging
from typing import Optional

from recwatch.domain.events import ClaimDenied, DiscoveryFinished, JobCompleted, JobFailed
from recwatch.infrastructure.event_bus import EventBus
from recwatch.infrastructure.notifier import Notifier


class OutcomeReporter:
    """Subscribes to job events, prints outcome markers and sends notifications."""

    def __init__(self, bus: EventBus, notifier: Optional[Notifier] = None, notify: bool = False):
        self.bus = bus
        self.notifier = notifier
        self.notify = notify and notifier is not None
        self.logger = logging.getLogger(__name__)
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(ClaimDenied, self.on_claim_denied)

    def on_discovery_finished(self, event: DiscoveryFinished):
        if event.files_found:
            self.logger.info(f"Files to convert: {event.files_found}")

    def on_job_completed(self, event: JobCompleted):
        job = event.job
        self.logger.info(f"✅ Converted: {job.input_path} -> {job.output_path}")
        if self.notify:
            self.notifier.send(
                "Conversion complete",
                f"{job.input_path.name} was converted.",
                open_path=job.output_path,
            )

    def on_job_failed(self, event: JobFailed):
        job = event.job
        self.logger.error(f"❌ Conversion failed: {job.input_path} -> {event.error_message}")
        if self.notify:
            self.notifier.send("Conversion failed", f"Could not convert {job.input_path.name}.")

    def on_claim_denied(self, event: ClaimDenied):
        self.logger.debug(f"CLAIM_DENIED: {event.path}")
