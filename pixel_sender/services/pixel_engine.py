"""Pixel run orchestrator.

Single public coroutine `run_pixel_sender(request, ...)` that:
1. Validates the raw items (all-or-nothing, before any I/O).
2. Looks up stored records for the batch's distinct trx_ids in one round trip
   (skipped with ``skip_dedup``) and classifies every event.
3. Stops there in dry-run mode and returns the dry-run report.
4. Sends every new/updated event to the pixel, one outcome per event.
5. Writes successful sends back to the record store (batched inserts, per-id updates).
6. Returns the normal report.

Any fatal error after validation (lookup, unexpected dispatch crash, record
store write) is turned into the error-shaped report and raised as
PixelRunAborted. The record store is closed on every exit path.

Not handled: repeated trx_ids inside one batch are not
collapsed, and nothing locks a trx_id across concurrent runs.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Sequence

from pixel_sender.integrations.base import PixelTransport, RecordStore
from pixel_sender.integrations.record_store import SqlRecordStore
from pixel_sender.integrations.trafficpoint import TrafficPointTransport
from pixel_sender.models.db.enums import ErrorStage
from pixel_sender.models.schemas.pixel import PixelRunRequest
from pixel_sender.services.dispatcher import Dispatched, dispatch, failed, was_update
from pixel_sender.services.errors import PixelRunAborted
from pixel_sender.services.mutation_planner import MutationCounts, apply_mutations, plan_mutations
from pixel_sender.services.reconciler import Reconciliation, reconcile
from pixel_sender.services.report_builder import RunContext, StageTimings, build_error_result, build_run_result
from pixel_sender.services.validator import validate_events
from pixel_sender.utils import get_logger, log_business_event, log_performance
from pixel_sender.utils.logger import StructuredLogger
from pixel_sender.utils.time import elapsed_ms

logger = get_logger(__name__)

StoreFactory = Callable[[str], RecordStore]
TransportFactory = Callable[[str], PixelTransport]


def default_store_factory(database: str) -> RecordStore:
    return SqlRecordStore(database=database)


def default_transport_factory(pixel_url: str) -> PixelTransport:
    return TrafficPointTransport(pixel_url)


def _log_reconciliation(log: StructuredLogger, reconciliation: Reconciliation, verbose: bool) -> None:
    log.progress(
        verbose,
        "Deduplication results",
        new_items=len(reconciliation.new),
        exact_duplicates=len(reconciliation.duplicates),
        updated_items=len(reconciliation.updated),
        records_found=reconciliation.records_found,
        lookup_skipped=reconciliation.skipped_lookup,
    )
    for item in reconciliation.updated:
        log.progress(verbose, "Updated item", trx_id=item.event.trx_id, **item.changes())


def _log_dispatch(log: StructuredLogger, dispatched: Sequence[Dispatched], verbose: bool) -> None:
    failures = failed(dispatched)
    log.progress(
        verbose,
        "Pixel dispatch finished",
        sent=len(dispatched),
        success=len(dispatched) - len(failures),
        failed=len(failures),
    )
    for d in failures:
        log.progress(verbose, "Failed send", trx_id=d.item.event.trx_id, error=d.outcome.error, was_update=was_update(d))


async def run_pixel_sender(
    request: PixelRunRequest,
    *,
    store_factory: Optional[StoreFactory] = None,
    transport_factory: Optional[TransportFactory] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Run the dedup -> send -> persist pipeline for one batch.

    Raises:
        ValidationError: an item lacks a required field (nothing was touched).
        PixelRunAborted: fatal error later on; ``.report`` holds the error result.
    """
    started = time.perf_counter()
    opts = request.options
    verbose = opts.verbose
    ctx = RunContext(script_id=request.script_id, dry_run=opts.dry_run, include_payloads=opts.include_payloads)
    total_input = len(request.items)
    store_factory = store_factory or default_store_factory
    transport_factory = transport_factory or default_transport_factory
    log = logger.bind(request_id=request_id, script_id=request.script_id)

    log.progress(verbose, "Pixel run started", received=total_input, database=request.database)
    events = validate_events(request.items)

    timings = StageTimings()
    stage = ErrorStage.DEDUPLICATION_CHECK
    dispatched: list[Dispatched] = []
    counts: Optional[MutationCounts] = None
    try:
        with store_factory(request.database) as store:
            mark = time.perf_counter()
            reconciliation = reconcile(events, store.lookup, skip_dedup=opts.skip_dedup)
            timings.lookup_ms = elapsed_ms(mark)
            _log_reconciliation(log, reconciliation, verbose)

            if not opts.dry_run:
                stage = ErrorStage.PIXEL_SEND
                mark = time.perf_counter()
                to_send = reconciliation.to_send
                if to_send:
                    log.progress(verbose, "Sending to pixel", count=len(to_send), pixel_url=request.pixel_url)
                    async with transport_factory(request.pixel_url) as transport:
                        dispatched = await dispatch(
                            to_send,
                            transport,
                            script_id=request.script_id,
                            include_payloads=opts.include_payloads,
                        )
                    _log_dispatch(log, dispatched, verbose)
                timings.dispatch_ms = elapsed_ms(mark)

                stage = ErrorStage.EXECUTION
                mark = time.perf_counter()
                counts = apply_mutations(store, plan_mutations(dispatched))
                timings.mutation_ms = elapsed_ms(mark)
                log.progress(verbose, "Database updates", db_inserted=counts.inserted, db_updated=counts.updated)
    except Exception as e:
        report = build_error_result(
            ctx=ctx,
            total_input=total_input,
            error=e,
            stage=stage,
            duration_ms=elapsed_ms(started),
        )
        log.error(
            "Pixel run aborted",
            stage=stage.value,
            error=str(e),
            error_type=e.__class__.__name__,
            exc_info=True,
        )
        log_business_event(
            event_type="pixel_run_failed",
            details={"stage": stage.value, "code": report["error"]["code"], "total_input": total_input},
            script_id=request.script_id,
            request_id=request_id,
        )
        raise PixelRunAborted(report, e) from e

    duration = elapsed_ms(started)
    result = build_run_result(
        ctx=ctx,
        total_input=total_input,
        reconciliation=reconciliation,
        dispatched=dispatched,
        counts=counts,
        timings=timings,
        duration_ms=duration,
    )
    log.progress(verbose, "Pixel run completed", duration_ms=duration)
    log_business_event(
        event_type="pixel_run_completed",
        details=dict(result["summary"], dry_run=opts.dry_run, skip_dedup=opts.skip_dedup),
        script_id=request.script_id,
        request_id=request_id,
    )
    log_performance(
        operation="pixel_run",
        duration_ms=duration,
        additional_data={
            "lookup_ms": timings.lookup_ms,
            "dispatch_ms": timings.dispatch_ms,
            "mutation_ms": timings.mutation_ms,
        },
    )
    return result


__all__ = ["run_pixel_sender", "default_store_factory", "default_transport_factory"]
