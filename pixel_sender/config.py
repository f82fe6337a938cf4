"""Core application configuration & tunable pipeline settings.

Everything that may differ between deployments (record store location, pixel
endpoint, dispatch concurrency, report sampling) is centralized here so it can
be adjusted without diving into service logic. Values are read from the
environment once at import time; tests monkeypatch the dicts directly.
"""
from __future__ import annotations

import os

# Record store URL. May contain a ``{database}`` placeholder which is filled in
# with the per-run ``database`` option (e.g. mysql+pymysql://u:p@host/{database}).
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./pixel_sender.db")

# Credential forwarded to the TrafficPoint pixel endpoint as a Cookie header.
TRAFFICPOINT_COOKIE_HEADER: str = os.getenv("TRAFFICPOINT_COOKIE_HEADER", "")

# ------------------------------ Run Defaults ------------------------------ #
PIXEL_SENDER_DEFAULTS: dict[str, str] = {
	"script_id": os.getenv("PIXEL_SCRIPT_ID", "3000"),
	"pixel_url": os.getenv("PIXEL_URL", "https://pixel.trafficpointltd.com/scraper"),
	"database": os.getenv("PIXEL_DATABASE", "cms"),
}

# -------------------------------- Dispatch -------------------------------- #
DISPATCH_SETTINGS: dict[str, int | float] = {
	# 1 = strictly sequential sends. Higher values allow bounded parallelism.
	"concurrency": int(os.getenv("PIXEL_DISPATCH_CONCURRENCY", "1")),
	# Enforced by the transport; a timeout surfaces as a failed send.
	"request_timeout_seconds": float(os.getenv("PIXEL_REQUEST_TIMEOUT", "30")),
}

# ------------------------------ Record Store ------------------------------ #
RECORD_STORE_SETTINGS: dict[str, str | int] = {
	"table": "scraper_tokens",
	"stream_tag": "scraper",  # fixed classification tag written on insert
	# decimal places of the amount columns; comparisons round to the same scale
	"amount_scale": 4,
}

# --------------------------------- Report --------------------------------- #
REPORT_SETTINGS: dict[str, int] = {
	"new_items_sample_size": 5,
}

__all__ = [
	"DATABASE_URL",
	"TRAFFICPOINT_COOKIE_HEADER",
	"PIXEL_SENDER_DEFAULTS",
	"DISPATCH_SETTINGS",
	"RECORD_STORE_SETTINGS",
	"REPORT_SETTINGS",
]
