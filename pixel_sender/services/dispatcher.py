"""Pixel dispatch: payload construction and per-event sending.

Every event in the transmission set gets exactly one send attempt and its own
outcome slot. A failure (error body or raised exception) is recorded against
that event and never stops the remaining sends. No retries.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pixel_sender.config import DISPATCH_SETTINGS
from pixel_sender.integrations.base import PixelTransport
from pixel_sender.models.db.enums import Classification, DispatchStatus
from pixel_sender.models.schemas.pixel import PixelEvent
from pixel_sender.services.reconciler import ReconciledEvent
from pixel_sender.utils import get_logger
from pixel_sender.utils.amounts import as_number
from pixel_sender.utils.time import pixel_timestamp

logger = get_logger(__name__)

FICO_MARKER = "fico"
FICO_PREFIX = "fico:"


def _compact_json(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def extract_fico(parent_api_call: str) -> Optional[str]:
    """Sub-token after the first ``fico:`` of the source reference, None when ``fico`` is absent.

    >>> extract_fico("parent:xyz;fico:ABC123")
    'ABC123'
    """
    if FICO_MARKER not in parent_api_call:
        return None
    # without the colon find() is -1 and the slice starts at index 4
    return parent_api_call[parent_api_call.find(FICO_PREFIX) + len(FICO_PREFIX):]


def build_payload_dict(event: PixelEvent, script_id: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "trackInfo": {
            "tokenId": "",
            "track_type": "event",
            "date": event.date,
            "timestamp": pixel_timestamp(now),
        },
        "params": {
            "commission_amount": as_number(event.commission_amount),
            "currency": event.currency,
            "amount": as_number(event.amount),
            "ioId": event.io_id,
        },
        "trxId": event.trx_id,
        "eventName": event.event.lower(),
        "source_token": str(event.token),
        "parent_api_call": _compact_json({
            "parent_api_call": event.parent_api_call,
            "script_id": script_id,
            "fico": extract_fico(event.parent_api_call),
        }),
    }


def build_payload(event: PixelEvent, script_id: str, *, now: Optional[datetime] = None) -> str:
    """Wire payload (compact JSON string) for one event."""
    return _compact_json(build_payload_dict(event, script_id, now=now))


@dataclass(frozen=True)
class DispatchOutcome:
    status: DispatchStatus
    error: Optional[str] = None
    payload: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == DispatchStatus.SUCCESS


@dataclass(frozen=True)
class Dispatched:
    item: ReconciledEvent
    outcome: DispatchOutcome


async def send_one(
    transport: PixelTransport,
    item: ReconciledEvent,
    *,
    script_id: str,
    include_payloads: bool = False,
) -> DispatchOutcome:
    payload = build_payload(item.event, script_id)
    kept_payload = payload if include_payloads else None
    try:
        result = await transport.send(payload)
    except Exception as e:  # any transport failure is this event's failed send
        reason = str(e) or "Request failed"
        logger.warning(
            "Pixel send raised",
            trx_id=item.event.trx_id,
            error=reason,
            error_type=e.__class__.__name__,
        )
        return DispatchOutcome(DispatchStatus.FAILURE, error=reason, payload=kept_payload)

    if isinstance(result, dict) and result.get("status") == DispatchStatus.SUCCESS.value:
        return DispatchOutcome(DispatchStatus.SUCCESS, payload=kept_payload)
    reason = (result.get("error") if isinstance(result, dict) else None) or "Unknown error"
    logger.warning("Pixel rejected event", trx_id=item.event.trx_id, error=reason)
    return DispatchOutcome(DispatchStatus.FAILURE, error=str(reason), payload=kept_payload)


async def dispatch(
    items: Sequence[ReconciledEvent],
    transport: PixelTransport,
    *,
    script_id: str,
    include_payloads: bool = False,
    concurrency: Optional[int] = None,
) -> List[Dispatched]:
    """Send the transmission set; the result lines up 1:1 with ``items``.

    ``concurrency`` of 1 sends strictly one after another in input order. Larger
    values start sends in input order with at most that many in flight.
    """
    limit = max(1, int(concurrency or DISPATCH_SETTINGS["concurrency"]))
    if limit == 1:
        outcomes = []
        for item in items:
            outcomes.append(await send_one(transport, item, script_id=script_id, include_payloads=include_payloads))
    else:
        semaphore = asyncio.Semaphore(limit)

        async def _bounded(item: ReconciledEvent) -> DispatchOutcome:
            async with semaphore:
                return await send_one(transport, item, script_id=script_id, include_payloads=include_payloads)

        outcomes = await asyncio.gather(*(_bounded(item) for item in items))

    return [Dispatched(item, outcome) for item, outcome in zip(items, outcomes)]


def failed(dispatched: Sequence[Dispatched]) -> List[Dispatched]:
    return [d for d in dispatched if not d.outcome.succeeded]


def was_update(d: Dispatched) -> bool:
    return d.item.status == Classification.UPDATED


__all__ = [
    "DispatchOutcome",
    "Dispatched",
    "extract_fico",
    "build_payload",
    "build_payload_dict",
    "send_one",
    "dispatch",
    "failed",
    "was_update",
]
