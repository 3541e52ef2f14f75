"""Canonical event schema and queue envelope."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = "1.0"


class EventType(str, Enum):
    """Clinical event classification."""
    ADMISSION = "admission"
    DISCHARGE = "discharge"
    TRANSFER = "transfer"
    UPDATE = "update"


class PatientName(BaseModel):
    model_config = ConfigDict(frozen=True)

    family: str = ""
    given: str = ""


class EventPayload(BaseModel):
    """Fields extracted from the source message."""
    model_config = ConfigDict(frozen=True)

    message_type: str = ""
    control_id: str = ""
    patient_mrn: str = ""
    patient_name: PatientName = Field(default_factory=PatientName)
    patient_dob: str = ""
    patient_gender: str = ""
    location: str = ""
    attending_physician: str = ""
    parse_issues: List[str] = Field(default_factory=list)


class EventMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    original_hl7: str = ""


class CanonicalEvent(BaseModel):
    """Normalized, source-agnostic representation of an ingested message.

    Field names are part of the persisted schema; bump ``schema_version``
    when changing them.
    """
    model_config = ConfigDict(frozen=True)

    schema_version: str = SCHEMA_VERSION
    id: str
    type: EventType = EventType.UPDATE
    patient_id: str = ""
    facility_id: str = ""
    timestamp: Optional[datetime] = None
    payload: EventPayload = Field(default_factory=EventPayload)
    metadata: EventMetadata


@dataclass
class QueueItem:
    """Transport wrapper for a canonical event while it waits in the queue."""
    id: str
    type: str
    payload: CanonicalEvent
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_event(cls, event: CanonicalEvent) -> "QueueItem":
        return cls(id=event.id, type=event.type.value, payload=event)
