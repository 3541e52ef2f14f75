"""HL7 v2 parsing and normalization."""

from .hl7 import HL7Message, SegmentStatus, parse_message
from .normalizer import Normalizer, normalize

__all__ = ["HL7Message", "SegmentStatus", "parse_message", "Normalizer", "normalize"]
