from .base import RejectedRun, ResponseBase
from .pixel import (
    PixelEvent,
    PixelRunOptions,
    PixelRunRequest,
    PixelRunResult,
    PixelRunErrorResult,
    REQUIRED_EVENT_FIELDS,
    EXPECTED_EVENT_FIELDS,
)

__all__ = [
    "ResponseBase",
    "RejectedRun",
    "PixelEvent",
    "PixelRunOptions",
    "PixelRunRequest",
    "PixelRunResult",
    "PixelRunErrorResult",
    "REQUIRED_EVENT_FIELDS",
    "EXPECTED_EVENT_FIELDS",
]
