"""Main HealthBridge pipeline implementation."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import structlog

from .config import Config
from .errors import QueueFullError
from ..events.models import CanonicalEvent, QueueItem
from ..events.queue import EventQueue
from ..ingestion.normalizer import Normalizer
from ..observability.metrics import MetricsRegistry
from ..rules.policy import PolicyGate

logger = structlog.get_logger()

EventSink = Callable[[CanonicalEvent], None]


@dataclass
class IngestResult:
    """Outcome of ingesting one raw message."""
    event: CanonicalEvent
    enqueued: bool
    reason: str = "enqueued"


@dataclass
class ProcessingReport:
    """Tally of one processing run."""
    events_processed: int = 0
    success_count: int = 0
    policy_violations: int = 0
    error_count: int = 0
    rejections: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def processing_time_ms(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds() * 1000

    @property
    def success_rate(self) -> float:
        if self.events_processed == 0:
            return 0.0
        return self.success_count / self.events_processed * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events_processed": self.events_processed,
            "success_count": self.success_count,
            "policy_violations": self.policy_violations,
            "error_count": self.error_count,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "success_rate": round(self.success_rate, 1),
            "rejections": list(self.rejections),
            "errors": list(self.errors),
        }


def _simulated_database_write(event: CanonicalEvent) -> None:
    logger.info("Writing to database (simulated)", event_id=event.id)


def _simulated_workflow_trigger(event: CanonicalEvent) -> None:
    logger.info("Triggering downstream workflows (simulated)", event_id=event.id)


def _simulated_patient_index_update(event: CanonicalEvent) -> None:
    logger.info("Updating patient index (simulated)", event_id=event.id)


DEFAULT_SINKS: Sequence[EventSink] = (
    _simulated_database_write,
    _simulated_workflow_trigger,
    _simulated_patient_index_update,
)


class IntegrationPipeline:
    """Owns one queue, metrics registry, normalizer and policy gate.

    Independent pipelines share no state, so several can run side by side
    in one process.
    """

    def __init__(self, config: Optional[Config] = None, sinks: Optional[Sequence[EventSink]] = None):
        """Initialize the pipeline with configuration."""
        self.config = config or Config()
        self.sinks: List[EventSink] = list(DEFAULT_SINKS if sinks is None else sinks)
        self._initialize_components()

    def _initialize_components(self):
        """Initialize all pipeline components."""
        self.metrics = MetricsRegistry()
        self.queue = EventQueue.from_config(self.config, on_shed=self._record_shed)
        self.normalizer = Normalizer.from_config(self.config)
        self.policy_gate = PolicyGate.from_config(self.config)

        logger.info("Pipeline components initialized")

    def ingest(self, raw: Union[str, bytes]) -> IngestResult:
        """Normalize a raw message and enqueue it unless already seen."""
        event = self.normalizer.normalize(raw)
        self.metrics.increment("ingested")

        try:
            enqueued = self.queue.enqueue(QueueItem.from_event(event))
        except QueueFullError as e:
            self.metrics.increment("rejected_full")
            logger.warning(f"Event rejected: {e}")
            return IngestResult(event=event, enqueued=False, reason="queue_full")

        if not enqueued:
            self.metrics.increment("duplicates")
            logger.info(f"Duplicate message detected, skipping: {event.id}")
            return IngestResult(event=event, enqueued=False, reason="duplicate")

        self.metrics.increment("enqueued")
        logger.info(
            f"Event queued: {event.id} ({event.type.value})",
            patient=f"{event.payload.patient_name.given} {event.payload.patient_name.family}".strip(),
            queue_length=self.queue.size(),
        )
        return IngestResult(event=event, enqueued=True)

    def _record_shed(self, item: QueueItem) -> None:
        self.metrics.increment("shed")

    def ingest_many(self, messages: Iterable[Union[str, bytes]]) -> List[IngestResult]:
        return [self.ingest(raw) for raw in messages]

    def process_pending(self) -> ProcessingReport:
        """Drain the queue and process every waiting event."""
        logger.info(f"Draining in-memory queue (size={self.queue.size()})")
        return self.process_events(item.payload for item in self.queue.drain())

    def process_events(self, events: Iterable[CanonicalEvent]) -> ProcessingReport:
        report = ProcessingReport()
        for event in events:
            self.process_event(event, report)
        report.finished_at = datetime.now(timezone.utc)

        logger.info(
            f"Processing complete: {report.events_processed} processed, "
            f"{report.success_count} succeeded, {report.policy_violations} rejected, "
            f"{report.error_count} errors"
        )
        return report

    def process_event(self, event: CanonicalEvent, report: ProcessingReport) -> None:
        """Apply policy to one event and run the downstream sinks on allow.

        Failures are tallied on ``report`` and never propagate, so one bad
        event cannot stop the rest of a batch.
        """
        log = logger.bind(event_id=event.id, event_type=event.type.value)
        log.info("Processing event")

        try:
            decision = self.policy_gate.evaluate(event)

            if not decision.allowed:
                log.info(f"Event rejected: {decision.reason}")
                report.policy_violations += 1
                report.rejections.append({
                    "event_id": event.id,
                    "policy": decision.violated_policy,
                    "reason": decision.reason,
                })
                self.metrics.increment("policy_violations")
                return

            for sink in self.sinks:
                sink(event)

            report.success_count += 1
            self.metrics.increment("allowed")
            log.info("Event processed successfully")
        except Exception as e:
            log.error(f"Error processing event: {e}")
            report.error_count += 1
            report.errors.append({"event_id": event.id, "error": str(e)})
            self.metrics.increment("errors")
        finally:
            report.events_processed += 1
            self.metrics.increment("processed")

    def get_pipeline_status(self) -> Dict[str, Any]:
        """Get current pipeline status and statistics."""
        return {
            "queue_size": self.queue.size(),
            "seen_events": self.queue.seen_count,
            "policies": [policy.name for policy in self.policy_gate.policies],
            "counters": dict(self.metrics.snapshot()),
            "pipeline_config": self.config.model_dump(mode="json"),
        }

    def close(self):
        """Release the pipeline's components."""
        remaining = self.queue.size()
        if remaining:
            logger.warning(f"Pipeline closed with {remaining} unprocessed event(s)")
        logger.info("Pipeline resources cleaned up")
