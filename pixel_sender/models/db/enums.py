"""Central Enum definitions for pipeline states.

These replace scattered string literals to ensure consistency across the
DB model, schemas, and business logic.
"""
from __future__ import annotations
import enum


class Classification(str, enum.Enum):
    NEW = "new"
    DUPLICATE = "duplicate"
    UPDATED = "updated"


class DispatchStatus(str, enum.Enum):
    """Per-event send outcome, valued as the pixel endpoint reports it."""
    SUCCESS = "OK"
    FAILURE = "ERROR"


class ErrorStage(str, enum.Enum):
    DEDUPLICATION_CHECK = "deduplication_check"
    PIXEL_SEND = "pixel_send"
    EXECUTION = "execution"


class RunMode(str, enum.Enum):
    REGULAR = "regular"

__all__ = [
    "Classification",
    "DispatchStatus",
    "ErrorStage",
    "RunMode",
]
