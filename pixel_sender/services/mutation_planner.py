"""Record-store writes derived from dispatch outcomes.

Only successful sends are written:
  new     -> one batched insert (trx_id, amount, commission, stream tag, now)
  updated -> one update per trx_id (amount, commission, write time)
Failed sends and duplicates produce nothing. Updates are applied in input
order, so for repeated trx_ids the last successful one is what remains stored.
Inserting an id that already exists is left to fail on the unique constraint.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from pixel_sender.config import RECORD_STORE_SETTINGS
from pixel_sender.integrations.base import RecordInsert, RecordStore, RecordUpdate
from pixel_sender.models.db.enums import Classification
from pixel_sender.services.dispatcher import Dispatched
from pixel_sender.services.errors import MutationError
from pixel_sender.utils import get_logger
from pixel_sender.utils.time import utc_now

logger = get_logger(__name__)


@dataclass
class MutationPlan:
    inserts: List[RecordInsert] = field(default_factory=list)
    updates: List[RecordUpdate] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.inserts and not self.updates


@dataclass
class MutationCounts:
    inserted: int = 0
    updated: int = 0


def plan_mutations(dispatched: Sequence[Dispatched], *, now: Optional[datetime] = None) -> MutationPlan:
    now = now or utc_now()
    stream = RECORD_STORE_SETTINGS["stream_tag"]
    plan = MutationPlan()
    for d in dispatched:
        if not d.outcome.succeeded:
            continue
        event = d.item.event
        if d.item.status == Classification.NEW:
            plan.inserts.append(RecordInsert(
                trx_id=event.trx_id,
                amount=event.amount,
                commission_amount=event.commission_amount,
                stream=stream,
                created_at=now,
            ))
        elif d.item.status == Classification.UPDATED:
            plan.updates.append(RecordUpdate(
                trx_id=event.trx_id,
                amount=event.amount,
                commission_amount=event.commission_amount,
                written_at=now,
            ))
    return plan


def apply_mutations(store: RecordStore, plan: MutationPlan) -> MutationCounts:
    """Apply inserts (single batch) then updates (one by one).

    Stops at the first failure and raises MutationError with what already went
    through. Nothing is rolled back.
    """
    counts = MutationCounts()
    if plan.inserts:
        try:
            store.insert_many(plan.inserts)
        except Exception as e:
            raise _mutation_failure(e, counts, f"Insert of {len(plan.inserts)} record(s) failed") from e
        counts.inserted = len(plan.inserts)

    for row in plan.updates:
        try:
            store.update_one(row)
        except Exception as e:
            raise _mutation_failure(e, counts, f"Update of {row.trx_id} failed") from e
        counts.updated += 1
    return counts


def _mutation_failure(exc: Exception, counts: MutationCounts, message: str) -> MutationError:
    if isinstance(exc, MutationError):
        # the store already wrapped the driver error
        cause = exc.details.get("cause") or exc.message
    else:
        cause = getattr(exc, "details", None) or str(exc)
    logger.error(
        "Record store write failed after pixel sends; manual reconciliation required",
        error=str(exc),
        db_inserted=counts.inserted,
        db_updated=counts.updated,
    )
    return MutationError(f"{message}: {exc}", inserted=counts.inserted, updated=counts.updated, details=cause)


__all__ = ["MutationPlan", "MutationCounts", "plan_mutations", "apply_mutations"]
