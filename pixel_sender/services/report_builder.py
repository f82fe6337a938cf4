"""Run result assembly.

Three shapes: normal, dry-run (summary says DRY_RUN_SKIPPED, metrics only hold
the lookup time) and error (execution.success=false plus an error block).
"""
from __future__ import annotations

import json
import traceback
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from pixel_sender.config import REPORT_SETTINGS
from pixel_sender.models.db.enums import Classification, ErrorStage, RunMode
from pixel_sender.models.schemas.pixel import (
    ChangeSet,
    DryRunMetrics,
    DryRunSummary,
    DuplicateDetail,
    ErrorInfo,
    ErrorSummary,
    ExecutionInfo,
    FailedSendDetail,
    NewItemSample,
    NormalSummary,
    PayloadDetail,
    PixelRunErrorResult,
    PixelRunResult,
    RunDetails,
    RunMetrics,
    UpdatedDetail,
)
from pixel_sender.services.dispatcher import DispatchOutcome, Dispatched
from pixel_sender.services.mutation_planner import MutationCounts
from pixel_sender.services.reconciler import Reconciliation, ReconciledEvent
from pixel_sender.utils.amounts import as_number
from pixel_sender.utils.time import iso_utc

PENDING = "PENDING"
NOT_SENT = "NOT_SENT"


@dataclass
class StageTimings:
    lookup_ms: int = 0
    dispatch_ms: int = 0
    mutation_ms: int = 0


@dataclass
class RunContext:
    script_id: str
    dry_run: bool = False
    include_payloads: bool = False


def _execution(ctx: RunContext, duration_ms: int, *, success: Optional[bool] = None) -> ExecutionInfo:
    return ExecutionInfo(
        mode=RunMode.REGULAR.value,
        dry_run=ctx.dry_run,
        script_id=ctx.script_id,
        timestamp=iso_utc(),
        duration_ms=duration_ms,
        success=success,
    )


def _pixel_status(outcome: Optional[DispatchOutcome], default: str = PENDING) -> str:
    return outcome.status.value if outcome else default


def build_details(
    reconciliation: Reconciliation,
    outcomes: Dict[int, DispatchOutcome],
    *,
    include_payloads: bool = False,
) -> RunDetails:
    """Detail lists. ``outcomes`` is keyed by ``id()`` of the reconciled item."""

    def outcome_of(item: ReconciledEvent) -> Optional[DispatchOutcome]:
        return outcomes.get(id(item))

    details = RunDetails(
        exact_duplicates=[
            DuplicateDetail(
                trx_id=item.event.trx_id,
                amount=as_number(item.event.amount),
                commission_amount=as_number(item.event.commission_amount),
                first_seen=iso_utc(item.record.created_at) if item.record.created_at else None,
            )
            for item in reconciliation.duplicates
        ],
        updated_items=[
            UpdatedDetail(
                trx_id=item.event.trx_id,
                changes=ChangeSet(**item.changes()),
                pixel_status=_pixel_status(outcome_of(item)),
            )
            for item in reconciliation.updated
        ],
        new_items_sample=[
            NewItemSample(
                trx_id=item.event.trx_id,
                amount=as_number(item.event.amount),
                commission_amount=as_number(item.event.commission_amount),
                event=item.event.event,
                pixel_status=_pixel_status(outcome_of(item)),
            )
            for item in reconciliation.new[: REPORT_SETTINGS["new_items_sample_size"]]
        ],
    )

    for item in reconciliation.to_send:
        outcome = outcome_of(item)
        if outcome is None or outcome.succeeded:
            continue
        is_update = item.status == Classification.UPDATED
        details.failed_sends.append(FailedSendDetail(
            trx_id=item.event.trx_id,
            io_id=item.event.io_id,
            error=outcome.error,
            amount=as_number(item.event.amount),
            commission_amount=as_number(item.event.commission_amount),
            was_update=is_update,
            changes=ChangeSet(**item.changes(include_first_seen=False)) if is_update else None,
        ))

    if include_payloads and reconciliation.to_send:
        details.pixel_payloads = []
        for item in reconciliation.to_send:
            outcome = outcome_of(item)
            details.pixel_payloads.append(PayloadDetail(
                trx_id=item.event.trx_id,
                status=item.status.value,
                pixel_status=_pixel_status(outcome, NOT_SENT),
                payload=json.loads(outcome.payload) if outcome and outcome.payload else None,
            ))
    return details


def build_run_result(
    *,
    ctx: RunContext,
    total_input: int,
    reconciliation: Reconciliation,
    dispatched: Optional[Sequence[Dispatched]],
    counts: Optional[MutationCounts],
    timings: StageTimings,
    duration_ms: int,
) -> Dict[str, Any]:
    """Normal result, or the dry-run variant when ``ctx.dry_run`` is set."""
    dispatched = dispatched or []
    outcomes = {id(d.item): d.outcome for d in dispatched}
    details = build_details(reconciliation, outcomes, include_payloads=ctx.include_payloads)

    base = {
        "total_input": total_input,
        "new_items": len(reconciliation.new),
        "exact_duplicates": len(reconciliation.duplicates),
        "updated_items": len(reconciliation.updated),
    }
    if ctx.dry_run:
        summary: NormalSummary | DryRunSummary = DryRunSummary(
            **base, would_send_to_pixel=len(reconciliation.to_send)
        )
        metrics: RunMetrics | DryRunMetrics = DryRunMetrics(mysql_check_ms=timings.lookup_ms)
    else:
        counts = counts or MutationCounts()
        succeeded = sum(1 for d in dispatched if d.outcome.succeeded)
        summary = NormalSummary(
            **base,
            sent_to_pixel=len(reconciliation.to_send),
            pixel_success=succeeded,
            pixel_failed=len(dispatched) - succeeded,
            db_inserted=counts.inserted,
            db_updated=counts.updated,
        )
        metrics = RunMetrics(
            mysql_check_ms=timings.lookup_ms,
            pixel_send_ms=timings.dispatch_ms,
            db_write_ms=timings.mutation_ms,
        )

    result = PixelRunResult(
        execution=_execution(ctx, duration_ms),
        summary=summary,
        details=details,
        metrics=metrics,
    )
    return result.model_dump(mode="json")


def build_error_result(
    *,
    ctx: RunContext,
    total_input: int,
    error: BaseException,
    stage: ErrorStage,
    duration_ms: int,
) -> Dict[str, Any]:
    details = getattr(error, "details", None)
    if details is None:
        details = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    result = PixelRunErrorResult(
        execution=_execution(ctx, duration_ms, success=False),
        error=ErrorInfo(
            code=getattr(error, "code", None) or "UNKNOWN_ERROR",
            message=getattr(error, "message", None) or str(error) or error.__class__.__name__,
            details=details,
            stage=stage.value,
        ),
        summary=ErrorSummary(total_input=total_input),
    )
    return result.model_dump(mode="json")


__all__ = ["StageTimings", "RunContext", "build_details", "build_run_result", "build_error_result"]
