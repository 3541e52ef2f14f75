"""Event handoff and FHIR export."""
