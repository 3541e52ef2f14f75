"""HealthBridge: healthcare-data integration pipeline.

This package ingests HL7 v2 clinical messages, normalizes them into canonical
events, queues them idempotently, gates them through ordered admission
policies and counts what happened along the way. A separate eval harness
checks payloads against declarative rules and raises a rollback flag.
"""

__version__ = "0.1.0"
__author__ = "HealthBridge Team"

from .core.pipeline import IntegrationPipeline
from .core.config import Config

__all__ = ["IntegrationPipeline", "Config"]
