"""Logging and metrics for HealthBridge."""

from .logging import configure_logging
from .metrics import MetricsRegistry

__all__ = ["configure_logging", "MetricsRegistry"]
