"""File-based canonical event handoff between processes.

A stand-in for a broker: one event is written to a well-known path and read
back by a separate consumer. It carries no durability guarantee.
"""

import json
import os
import tempfile
from pathlib import Path

import structlog
from pydantic import ValidationError

from ..core.errors import HandoffError
from ..events.models import CanonicalEvent

logger = structlog.get_logger()


def write_event(event: CanonicalEvent, path: str) -> Path:
    """Write ``event`` as JSON, replacing any previous file atomically."""
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
        try:
            with os.fdopen(fd, 'w', encoding="utf-8") as f:
                f.write(event.model_dump_json(indent=2))
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.error(f"Failed to write canonical event {event.id}: {e}")
        raise HandoffError(f"Cannot write canonical event: {e}", str(target)) from e

    logger.info(f"Canonical event {event.id} written to {target}")
    return target


def read_event(path: str) -> CanonicalEvent:
    """Read and validate a canonical event written by :func:`write_event`."""
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as e:
        raise HandoffError(f"Cannot read canonical event: {e}", str(source)) from e

    try:
        event = CanonicalEvent.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Invalid canonical event in {source}: {e}")
        raise HandoffError(f"Invalid canonical event: {e}", str(source)) from e

    logger.info(f"Loaded canonical event from file: {source}")
    return event
