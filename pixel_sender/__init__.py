"""Pixel sender package.

Deduplicates affiliate conversion events against the record store and forwards
new or changed ones to the TrafficPoint pixel. The pipeline entrypoint is
``pixel_sender.services.pixel_engine.run_pixel_sender``; ``pixel_sender.main``
exposes it over HTTP.
"""

__all__: list[str] = []
