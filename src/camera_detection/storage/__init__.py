"""
Persistence: event store, event recorder, and retention engine.
"""

from .database import EventStore
from .recorder import EventRecorder
from .retention import PurgeEngine

__all__ = ["EventRecorder", "EventStore", "PurgeEngine"]
