"""HL7 v2 to canonical event normalization."""

import hashlib
from typing import Optional, Tuple, Union

import structlog

from ..events.models import CanonicalEvent, EventMetadata, EventPayload, EventType, PatientName
from .hl7 import HL7Message, parse_message, parse_timestamp

logger = structlog.get_logger()

# Ordered: the first code contained in the message type wins.
EVENT_TYPE_RULES: Tuple[Tuple[str, EventType], ...] = (
    ("A01", EventType.ADMISSION),
    ("A03", EventType.DISCHARGE),
    ("A02", EventType.TRANSFER),
)

EXPECTED_SEGMENTS = ("MSH", "PID", "PV1")


def classify_message_type(message_type: str) -> EventType:
    """Map an HL7 message type code (e.g. ``ADT^A01``) to an event type."""
    for code, event_type in EVENT_TYPE_RULES:
        if code in message_type:
            return event_type
    return EventType.UPDATE


def derive_event_id(source: str, control_id: str, canonical_text: str) -> str:
    """Stable id from the source, the message control id and the message content."""
    digest = hashlib.sha256(f"{source}\x1f{control_id}\x1f{canonical_text}".encode("utf-8", "surrogatepass")).hexdigest()
    return f"evt_{digest[:32]}"


class Normalizer:
    """Turns raw HL7 v2 messages into canonical events.

    ``normalize`` is a pure function of its input: the same bytes always
    produce the same event, including its id, so re-ingesting a message is
    caught by the queue's dedup.
    """

    def __init__(self, source: str = "hl7-ingest", encoding: str = "utf-8",
                 default_facility_id: Optional[str] = None):
        self.source = source
        self.encoding = encoding
        self.default_facility_id = default_facility_id

    @classmethod
    def from_config(cls, config) -> "Normalizer":
        return cls(
            source=config.normalizer.source,
            encoding=config.normalizer.encoding,
            default_facility_id=config.normalizer.default_facility_id,
        )

    def normalize(self, raw: Union[str, bytes]) -> CanonicalEvent:
        message = parse_message(raw, self.encoding)
        return self.normalize_message(message)

    def normalize_message(self, message: HL7Message) -> CanonicalEvent:
        message_type = message.value("MSH", 9)
        control_id = message.value("MSH", 10)
        mrn = message.value("PID", 3, component=1)
        facility_id = message.value("MSH", 4, component=1) or self.default_facility_id or ""

        timestamp = parse_timestamp(message.value("MSH", 7, component=1))
        if timestamp is None:
            timestamp = parse_timestamp(message.value("EVN", 2, component=1))

        issues = message.issues(EXPECTED_SEGMENTS)
        if issues:
            logger.warning(f"Degraded HL7 message {control_id or '<no control id>'}: {', '.join(issues)}")

        canonical_text = message.canonical_text
        event = CanonicalEvent(
            id=derive_event_id(self.source, control_id, canonical_text),
            type=classify_message_type(message_type),
            patient_id=mrn,
            facility_id=facility_id,
            timestamp=timestamp,
            payload=EventPayload(
                message_type=message_type,
                control_id=control_id,
                patient_mrn=mrn,
                patient_name=PatientName(
                    family=message.value("PID", 5, component=1),
                    given=message.value("PID", 5, component=2),
                ),
                patient_dob=message.value("PID", 7),
                patient_gender=message.value("PID", 8),
                location=message.value("PV1", 3),
                attending_physician=message.value("PV1", 7),
                parse_issues=issues,
            ),
            metadata=EventMetadata(source=self.source, original_hl7=canonical_text),
        )

        logger.debug(f"Normalized {message_type or 'unknown'} message into {event.id} ({event.type.value})")
        return event


def normalize(raw: Union[str, bytes], source: str = "hl7-ingest") -> CanonicalEvent:
    """Normalize a raw message with a default normalizer."""
    return Normalizer(source=source).normalize(raw)
