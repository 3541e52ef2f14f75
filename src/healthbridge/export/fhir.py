"""FHIR projections of canonical events."""

import re

import structlog
from fhir.resources.patient import Patient

from ..events.models import CanonicalEvent
from ..ingestion.hl7 import parse_timestamp

logger = structlog.get_logger()

MRN_SYSTEM = "http://example.org/fhir/ids"

# HL7 table 0001 administrative sex to FHIR administrative-gender
GENDER_CODES = {
    "M": "male",
    "F": "female",
    "O": "other",
    "A": "other",
    "U": "unknown",
}


def fhir_id(value: str) -> str:
    """Coerce a value into the FHIR id alphabet ``[A-Za-z0-9-.]{1,64}``."""
    cleaned = re.sub(r"[^A-Za-z0-9\-.]", "-", value).strip("-")
    return cleaned[:64] or "unknown"


def build_patient_resource(event: CanonicalEvent) -> Patient:
    """Create a FHIR Patient resource from the patient fields of an event."""
    payload = event.payload
    resource = {
        "id": fhir_id(payload.patient_mrn),
        "active": True,
        "gender": GENDER_CODES.get(payload.patient_gender.upper(), "unknown"),
    }

    if payload.patient_mrn:
        resource["identifier"] = [{
            "system": MRN_SYSTEM,
            "value": payload.patient_mrn,
        }]

    name = payload.patient_name
    if name.family or name.given:
        entry = {"use": "official"}
        if name.family:
            entry["family"] = name.family
        if name.given:
            entry["given"] = [name.given]
        resource["name"] = [entry]

    birth = parse_timestamp(payload.patient_dob[:8]) if len(payload.patient_dob) >= 8 else None
    if birth is not None:
        resource["birthDate"] = birth.date().isoformat()

    logger.debug(f"Built FHIR Patient {resource['id']} from event {event.id}")
    return Patient(**resource)
