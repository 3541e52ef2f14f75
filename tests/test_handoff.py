"""Test the canonical event handoff file."""

import json

import pytest

from healthbridge.core.errors import HandoffError, InfrastructureError
from healthbridge.export.handoff import read_event, write_event


class TestHandoff:

    def test_written_event_reads_back_equal(self, temp_dir, sample_event):
        path = write_event(sample_event, str(temp_dir / "out" / "normalized.json"))

        assert path.exists()
        assert read_event(str(path)) == sample_event

    def test_document_is_self_describing(self, temp_dir, sample_event):
        path = write_event(sample_event, str(temp_dir / "normalized.json"))

        document = json.loads(path.read_text())

        assert document["schema_version"] == "1.0"
        assert document["type"] == "admission"
        assert document["payload"]["patient_mrn"] == "MRN123456"

    def test_overwrite_leaves_no_temp_files(self, temp_dir, sample_event):
        target = temp_dir / "normalized.json"
        write_event(sample_event, str(target))
        write_event(sample_event, str(target))

        assert [p.name for p in temp_dir.iterdir()] == ["normalized.json"]

    def test_missing_file(self, temp_dir):
        with pytest.raises(HandoffError):
            read_event(str(temp_dir / "absent.json"))

    def test_invalid_json_is_infrastructure_error(self, temp_dir):
        path = temp_dir / "normalized.json"
        path.write_text("{not json")

        with pytest.raises(InfrastructureError) as exc_info:
            read_event(str(path))

        assert exc_info.value.path == str(path)

    def test_schema_mismatch(self, temp_dir):
        path = temp_dir / "normalized.json"
        path.write_text(json.dumps({"type": "admission"}))

        with pytest.raises(HandoffError):
            read_event(str(path))

    def test_unwritable_target(self, temp_dir, sample_event):
        blocker = temp_dir / "blocker"
        blocker.write_text("a file, not a directory")

        with pytest.raises(HandoffError):
            write_event(sample_event, str(blocker / "normalized.json"))
