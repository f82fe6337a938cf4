"""Time utilities (UTC now, pixel send-time stamps, elapsed milliseconds)."""
from __future__ import annotations
import time
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def pixel_timestamp(now: datetime | None = None) -> str:
    """Send-time stamp in the pixel's nanosecond form: millisecond precision, zero padded.

    >>> pixel_timestamp(datetime(2025, 3, 1, 10, 20, 30, 123456, tzinfo=timezone.utc))
    '2025-03-01T10:20:30.123000000Z'
    """
    ts = (now or utc_now()).astimezone(timezone.utc)
    return f"{ts:%Y-%m-%dT%H:%M:%S}.{ts.microsecond // 1000:03d}000000Z"

def iso_utc(now: datetime | None = None) -> str:
    ts = (now or utc_now()).astimezone(timezone.utc)
    return f"{ts:%Y-%m-%dT%H:%M:%S}.{ts.microsecond // 1000:03d}Z"

def elapsed_ms(start: float) -> int:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return int((time.perf_counter() - start) * 1000)

__all__ = ["utc_now", "pixel_timestamp", "iso_utc", "elapsed_ms"]
