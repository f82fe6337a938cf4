"""
Pixel run endpoints.
"""
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
import time
from pixel_sender.api.deps import get_store_factory, get_transport_factory
from pixel_sender.models.schemas.base import RejectedRun
from pixel_sender.models.schemas.pixel import PixelRunRequest
from pixel_sender.services.errors import PixelRunAborted, ValidationError
from pixel_sender.services.pixel_engine import StoreFactory, TransportFactory, run_pixel_sender
from pixel_sender.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/",
    summary="Deduplicate a batch of conversions and forward the rest to the pixel",
    responses={
        422: {"description": "An item is missing required fields"},
        500: {"description": "Run aborted; body is the error-shaped run result"},
    },
)
async def create_pixel_run(
    run_request: PixelRunRequest,
    request: Request,
    store_factory: StoreFactory = Depends(get_store_factory),
    transport_factory: TransportFactory = Depends(get_transport_factory),
) -> Dict[str, Any]:
    """Run one batch through dedup, pixel dispatch and record-store write-back.

    Modes (``options``):
      - dry_run: classify only; nothing is sent or written
      - skip_dedup: no lookup; every item is treated as new
      - include_payloads: echo the exact pixel payloads in ``details.pixel_payloads``
    """
    start_time = time.time()
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "Pixel run requested",
        items=len(run_request.items),
        script_id=run_request.script_id,
        database=run_request.database,
        dry_run=run_request.options.dry_run,
        skip_dedup=run_request.options.skip_dedup,
        request_id=request_id,
    )

    try:
        result = await run_pixel_sender(
            run_request,
            store_factory=store_factory,
            transport_factory=transport_factory,
            request_id=request_id,
        )
    except ValidationError as e:
        logger.warning(
            "Pixel run rejected",
            item_index=e.item_index,
            request_id=request_id,
        )
        rejection = RejectedRun(
            message=e.message,
            details={"item_index": e.item_index, "expected_fields": e.expected_fields},
            request_id=request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=rejection.model_dump(mode="json"),
        )
    except PixelRunAborted as e:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=e.report)

    log_performance(
        operation="create_pixel_run",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"items": len(run_request.items)},
    )
    return result
