"""Input validation for pixel runs.

All-or-nothing: the first offending item fails the whole batch with a
ValidationError carrying its zero-based index. No partial result is returned.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Sequence

from pydantic import ValidationError as SchemaValidationError

from pixel_sender.models.schemas.pixel import EXPECTED_EVENT_FIELDS, REQUIRED_EVENT_FIELDS, PixelEvent
from pixel_sender.services.errors import ValidationError


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def missing_required_fields(item: Mapping[str, Any]) -> list[str]:
    return [name for name in REQUIRED_EVENT_FIELDS if _is_blank(item.get(name))]


def validate_events(items: Sequence[Any]) -> List[PixelEvent]:
    """Validate raw items (field name -> value mappings) into PixelEvents, preserving order."""
    events: List[PixelEvent] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping) or missing_required_fields(item):
            raise ValidationError(index, EXPECTED_EVENT_FIELDS)
        try:
            events.append(PixelEvent.model_validate(dict(item)))
        except SchemaValidationError as e:
            bad = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ValidationError(
                index,
                EXPECTED_EVENT_FIELDS,
                message=f"Item {index} has invalid values ({bad}). Expected: {', '.join(EXPECTED_EVENT_FIELDS)}",
            ) from e
    return events


__all__ = ["validate_events", "missing_required_fields"]
