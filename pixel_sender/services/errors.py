"""Error taxonomy for pixel runs.

Propagation policy:
* ValidationError / RecordLookupError abort before any side effect (safe to retry the run).
* DispatchError is per event; the dispatcher records it as a failed send and moves on.
* MutationError aborts remaining writes and carries what was already applied; the
  sent-but-unrecorded rows must be reconciled by hand (no rollback).
* PixelRunAborted wraps any fatal error together with the error-shaped report.
"""
from __future__ import annotations

from typing import Any, Sequence

from pixel_sender.models.db.enums import ErrorStage


class PixelSenderError(Exception):
    code: str = "PIXEL_SENDER_ERROR"

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(PixelSenderError):
    code = "VALIDATION_ERROR"

    def __init__(self, item_index: int, expected_fields: Sequence[str], message: str | None = None):
        self.item_index = item_index
        self.expected_fields = list(expected_fields)
        super().__init__(
            message or f"Item {item_index} is missing required fields. Expected: {', '.join(self.expected_fields)}",
            details={"item_index": item_index, "expected_fields": self.expected_fields},
        )


class RecordLookupError(PixelSenderError):
    code = "RECORD_LOOKUP_FAILED"
    stage = ErrorStage.DEDUPLICATION_CHECK


class DispatchError(PixelSenderError):
    code = "PIXEL_SEND_FAILED"
    stage = ErrorStage.PIXEL_SEND


class MutationError(PixelSenderError):
    code = "RECORD_MUTATION_FAILED"
    stage = ErrorStage.EXECUTION

    def __init__(self, message: str, *, inserted: int = 0, updated: int = 0, details: Any = None):
        self.inserted = inserted
        self.updated = updated
        super().__init__(
            message,
            details={"db_inserted": inserted, "db_updated": updated, "cause": details},
        )


class PixelRunAborted(PixelSenderError):
    """Fatal run error. ``report`` is the error-shaped result (dict)."""

    def __init__(self, report: dict[str, Any], cause: BaseException):
        self.report = report
        self.cause = cause
        error = report.get("error", {})
        self.code = error.get("code", "UNKNOWN_ERROR")
        super().__init__(error.get("message") or str(cause), details=report)


__all__ = [
    "PixelSenderError",
    "ValidationError",
    "RecordLookupError",
    "DispatchError",
    "MutationError",
    "PixelRunAborted",
]
