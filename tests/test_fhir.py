"""Test FHIR Patient projection."""

from healthbridge.export.fhir import build_patient_resource, fhir_id
from healthbridge.ingestion.normalizer import normalize
from conftest import make_message


class TestPatientResource:

    def test_patient_from_sample(self, sample_event):
        patient = build_patient_resource(sample_event)

        assert patient.id == "MRN123456"
        assert patient.gender == "male"
        assert str(patient.birthDate) == "1980-01-01"
        assert patient.name[0].family == "DOE"
        assert patient.name[0].given == ["JOHN"]
        assert patient.identifier[0].value == "MRN123456"

    def test_missing_demographics(self):
        event = normalize("MSH|^~\\&|APP|FAC|||20230813110800||ADT^A08|MSG1|P|2.5")

        patient = build_patient_resource(event)

        assert patient.id == "unknown"
        assert patient.gender == "unknown"
        assert patient.name is None
        assert patient.birthDate is None

    def test_identifier_is_sanitized(self):
        event = normalize(make_message(mrn="MRN 12/3^^^HOSPITAL^MR"))

        assert build_patient_resource(event).id == "MRN-12-3"

    def test_fhir_id(self):
        assert fhir_id("abc.DEF-123") == "abc.DEF-123"
        assert fhir_id("") == "unknown"
        assert len(fhir_id("x" * 100)) == 64
