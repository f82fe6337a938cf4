"""Event reconciliation against previously sent records.

Each event is classified as exactly one of:
  NewEvent       - no stored record for its trx_id
  DuplicateEvent - stored record with numerically equal amount AND commission
  UpdatedEvent   - stored record whose amount or commission differs

Only amount and commission take part in the comparison; currency, token and
event type never do. The stored record travels only with the duplicate and
updated variants.

Events sharing a trx_id inside one batch are each compared against the same
stored snapshot, not against each other. The input order is kept so that
whichever of them is written last wins downstream.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Sequence, Union

from pixel_sender.integrations.base import StoredRecord
from pixel_sender.models.db.enums import Classification
from pixel_sender.models.schemas.pixel import PixelEvent
from pixel_sender.services.errors import PixelSenderError, RecordLookupError
from pixel_sender.utils import get_logger
from pixel_sender.utils.amounts import amounts_equal, as_number
from pixel_sender.utils.time import iso_utc

logger = get_logger(__name__)

LookupFn = Callable[[set[str]], Iterable[StoredRecord]]


@dataclass(frozen=True)
class NewEvent:
    event: PixelEvent
    status: ClassVar[Classification] = Classification.NEW

    @property
    def needs_send(self) -> bool:
        return True


@dataclass(frozen=True)
class DuplicateEvent:
    event: PixelEvent
    record: StoredRecord
    status: ClassVar[Classification] = Classification.DUPLICATE

    @property
    def needs_send(self) -> bool:
        return False


@dataclass(frozen=True)
class UpdatedEvent:
    event: PixelEvent
    record: StoredRecord
    status: ClassVar[Classification] = Classification.UPDATED

    @property
    def needs_send(self) -> bool:
        return True

    def changes(self, *, include_first_seen: bool = True) -> Dict[str, Any]:
        changes: Dict[str, Any] = {
            "old_amount": as_number(self.record.amount),
            "new_amount": as_number(self.event.amount),
            "old_commission": as_number(self.record.commission_amount),
            "new_commission": as_number(self.event.commission_amount),
        }
        if include_first_seen:
            changes["first_seen"] = iso_utc(self.record.created_at) if self.record.created_at else None
        return changes


ReconciledEvent = Union[NewEvent, DuplicateEvent, UpdatedEvent]


def classify_event(event: PixelEvent, record: Optional[StoredRecord]) -> ReconciledEvent:
    """Pure classification of one event against its (optional) stored record."""
    if record is None:
        return NewEvent(event)
    if amounts_equal(record.amount, event.amount) and amounts_equal(record.commission_amount, event.commission_amount):
        return DuplicateEvent(event, record)
    return UpdatedEvent(event, record)


@dataclass
class Reconciliation:
    items: List[ReconciledEvent]
    records_found: int = 0
    skipped_lookup: bool = False

    def _of(self, status: Classification) -> List[ReconciledEvent]:
        return [item for item in self.items if item.status == status]

    @property
    def new(self) -> List[ReconciledEvent]:
        return self._of(Classification.NEW)

    @property
    def duplicates(self) -> List[ReconciledEvent]:
        return self._of(Classification.DUPLICATE)

    @property
    def updated(self) -> List[ReconciledEvent]:
        return self._of(Classification.UPDATED)

    @property
    def to_send(self) -> List[ReconciledEvent]:
        """Transmission set: new + updated, in input order."""
        return [item for item in self.items if item.needs_send]


def _index_records(records: Iterable[StoredRecord]) -> Dict[str, StoredRecord]:
    by_id: Dict[str, StoredRecord] = {}
    for record in records:
        # first row wins if the store ever returns more than one
        by_id.setdefault(record.trx_id, record)
    return by_id


def reconcile(events: Sequence[PixelEvent], lookup: Optional[LookupFn], *, skip_dedup: bool = False) -> Reconciliation:
    """Classify every event, fetching stored records in a single batched lookup.

    With ``skip_dedup`` the lookup is never called and every event is new; an id
    that is already stored then fails at insert time.
    """
    if skip_dedup:
        return Reconciliation(items=[NewEvent(event) for event in events], skipped_lookup=True)
    if lookup is None:
        raise RecordLookupError("No record lookup configured and skip_dedup is off")

    trx_ids = {event.trx_id for event in events}
    records: Dict[str, StoredRecord] = {}
    if trx_ids:
        try:
            records = _index_records(lookup(trx_ids))
        except PixelSenderError:
            raise
        except Exception as e:
            raise RecordLookupError(f"Record lookup failed: {e}", details=e.__class__.__name__) from e

    items = [classify_event(event, records.get(event.trx_id)) for event in events]
    repeated = [trx_id for trx_id, count in Counter(event.trx_id for event in events).items() if count > 1]
    if repeated:
        logger.warning(
            "Batch contains repeated trx_ids; each is classified against the same stored record",
            trx_ids=sorted(repeated)[:20],
            repeated_count=len(repeated),
        )
    return Reconciliation(items=items, records_found=len(records))


__all__ = [
    "NewEvent",
    "DuplicateEvent",
    "UpdatedEvent",
    "ReconciledEvent",
    "Reconciliation",
    "classify_event",
    "reconcile",
]
