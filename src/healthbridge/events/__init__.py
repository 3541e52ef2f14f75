"""Canonical events and the queue that carries them."""

from .models import CanonicalEvent, EventType, QueueItem
from .queue import EventQueue

__all__ = ["CanonicalEvent", "EventType", "QueueItem", "EventQueue"]
