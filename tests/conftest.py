"""Test fixtures and configuration for pytest."""

import pytest
import tempfile
from pathlib import Path

SAMPLE_HL7 = "\r".join([
    "MSH|^~\\&|SENDING_APP|FACILITY_001|RECEIVING_APP|RECEIVING_FACILITY|20230813110800||ADT^A01|MSG123456|P|2.5",
    "EVN||202308131108",
    "PID|1||MRN123456^^^HOSPITAL^MR||DOE^JOHN^||19800101|M|||123 MAIN ST^^ANYTOWN^ST^12345||(555)123-4567||||||||||",
    "PV1|1|I|ICU^101^01||||12345^SMITH^JANE^M^^^DR|||||||||||||||||||||||202308131100",
])


def make_message(control_id="MSG123456", message_type="ADT^A01", facility="FACILITY_001",
                 mrn="MRN123456^^^HOSPITAL^MR"):
    """Build a variant of the sample ADT message."""
    return "\r".join([
        f"MSH|^~\\&|SENDING_APP|{facility}|RECEIVING_APP|RECEIVING_FACILITY|20230813110800||{message_type}|{control_id}|P|2.5",
        "EVN||202308131108",
        f"PID|1||{mrn}||DOE^JOHN^||19800101|M",
        "PV1|1|I|ICU^101^01||||12345^SMITH^JANE^M^^^DR",
    ])


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_hl7():
    """Synthetic HL7 v2 ADT^A01 message."""
    return SAMPLE_HL7


@pytest.fixture
def sample_event(sample_hl7):
    """Canonical event normalized from the sample message."""
    from healthbridge.ingestion.normalizer import Normalizer

    return Normalizer().normalize(sample_hl7)


@pytest.fixture
def sample_config():
    """Sample configuration for testing."""
    from healthbridge.core.config import Config

    config = Config()
    config.queue.max_size = 100
    config.handoff.path = "normalized.json"
    return config
