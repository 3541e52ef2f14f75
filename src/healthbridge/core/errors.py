"""Error taxonomy for HealthBridge.

Malformed clinical input is never an error (the normalizer degrades fields)
and policy violations are results, not exceptions. What remains are
configuration problems, which are fatal at startup, and infrastructure
failures, which callers must be able to tell apart from bad data.
"""

from typing import Optional


class HealthBridgeError(Exception):
    """Base class for all HealthBridge errors."""


class ConfigurationError(HealthBridgeError):
    """Raised when configuration cannot be loaded or validated."""


class InfrastructureError(HealthBridgeError):
    """I/O or serialization failure, as opposed to bad input data."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)


class HandoffError(InfrastructureError):
    """Raised when the canonical event handoff file cannot be written or read."""


class QueueFullError(HealthBridgeError):
    """Raised when a bounded queue rejects an item on overflow."""

    def __init__(self, item_id: str, max_size: int):
        self.item_id = item_id
        self.max_size = max_size
        super().__init__(f"Queue full ({max_size} items), rejected {item_id}")
