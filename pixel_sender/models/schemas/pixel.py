"""
Pydantic schemas for pixel runs: the inbound event, run request, and the three result shapes.
"""
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer

from pixel_sender.config import PIXEL_SENDER_DEFAULTS

Number = Union[int, float]

REQUIRED_EVENT_FIELDS: tuple[str, ...] = ("date", "token", "event", "trx_id", "io_id")
EXPECTED_EVENT_FIELDS: tuple[str, ...] = (
    "date", "token", "event", "trx_id", "io_id",
    "commission_amount", "amount", "currency", "parent_api_call",
)

class PixelEvent(BaseModel):
    """
    One affiliate conversion as scraped upstream.
    ``trx_id`` is the reconciliation key; everything else is payload.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    date: str = Field(description="Occurrence timestamp, forwarded verbatim")
    token: str = Field(description="Affiliate token")
    event: str = Field(description="Event-type label, e.g. Sale or Lead")
    trx_id: str = Field(description="Transaction identifier (unique in the record store)")
    io_id: str = Field(description="Brand / campaign identifier")
    commission_amount: Number = 0
    amount: Number = 0
    currency: str = ""
    parent_api_call: str = Field("", description="Free-form source reference")

    @field_validator("date", "token", "event", "trx_id", "io_id", mode="before")
    @classmethod
    def _stringify_scalars(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("commission_amount", "amount", mode="before")
    @classmethod
    def _default_amounts(cls, v: Any) -> Any:
        return 0 if v is None or v == "" else v

    @field_validator("currency", "parent_api_call", mode="before")
    @classmethod
    def _default_strings(cls, v: Any) -> Any:
        return "" if v is None else v

class PixelRunOptions(BaseModel):
    dry_run: bool = Field(False, description="Classify only; no pixel sends and no DB writes")
    skip_dedup: bool = Field(False, description="Bypass the record-store lookup; every event is treated as new")
    verbose: bool = Field(False, description="Log per-run progress at INFO")
    include_payloads: bool = Field(False, description="Echo the pixel request payloads in the result")

class PixelRunRequest(BaseModel):
    """Body of POST /pixel-runs. Items stay raw so validation can report the offending index."""
    items: List[Dict[str, Any]] = Field(default_factory=list)
    script_id: str = Field(default_factory=lambda: PIXEL_SENDER_DEFAULTS["script_id"], min_length=1)
    pixel_url: str = Field(default_factory=lambda: PIXEL_SENDER_DEFAULTS["pixel_url"], min_length=1)
    database: str = Field(default_factory=lambda: PIXEL_SENDER_DEFAULTS["database"], min_length=1)
    options: PixelRunOptions = Field(default_factory=PixelRunOptions)

# ------------------------------- Results -------------------------------- #

class ExecutionInfo(BaseModel):
    mode: str = "regular"
    dry_run: bool
    script_id: str
    timestamp: str
    duration_ms: int
    success: Optional[bool] = None

    @model_serializer(mode="wrap")
    def _omit_success_unless_failed(self, handler):
        data = handler(self)
        if data.get("success") is None:
            data.pop("success", None)
        return data

class NormalSummary(BaseModel):
    total_input: int
    new_items: int
    exact_duplicates: int
    updated_items: int
    sent_to_pixel: int
    pixel_success: int
    pixel_failed: int
    db_inserted: int
    db_updated: int

class DryRunSummary(BaseModel):
    total_input: int
    new_items: int
    exact_duplicates: int
    updated_items: int
    would_send_to_pixel: int
    status: str = "DRY_RUN_SKIPPED"

class ErrorSummary(BaseModel):
    total_input: int
    processed: int = 0

class ChangeSet(BaseModel):
    old_amount: Number
    new_amount: Number
    old_commission: Number
    new_commission: Number
    first_seen: Optional[str] = None

    @model_serializer(mode="wrap")
    def _omit_missing_first_seen(self, handler):
        data = handler(self)
        if data.get("first_seen") is None:
            data.pop("first_seen", None)
        return data

class DuplicateDetail(BaseModel):
    trx_id: str
    amount: Number
    commission_amount: Number
    first_seen: Optional[str]
    action: str = "skipped"

class UpdatedDetail(BaseModel):
    trx_id: str
    action: str = "updated_and_sent"
    changes: ChangeSet
    pixel_status: str

class FailedSendDetail(BaseModel):
    trx_id: str
    io_id: str
    error: Optional[str]
    amount: Number
    commission_amount: Number
    was_update: bool
    changes: Optional[ChangeSet] = None

    @model_serializer(mode="wrap")
    def _omit_changes_for_new(self, handler):
        data = handler(self)
        if data.get("changes") is None:
            data.pop("changes", None)
        return data

class NewItemSample(BaseModel):
    trx_id: str
    amount: Number
    commission_amount: Number
    event: str
    pixel_status: str

class PayloadDetail(BaseModel):
    trx_id: str
    status: str
    pixel_status: str
    payload: Optional[Dict[str, Any]]

class RunDetails(BaseModel):
    exact_duplicates: List[DuplicateDetail] = Field(default_factory=list)
    updated_items: List[UpdatedDetail] = Field(default_factory=list)
    failed_sends: List[FailedSendDetail] = Field(default_factory=list)
    new_items_sample: List[NewItemSample] = Field(default_factory=list)
    pixel_payloads: Optional[List[PayloadDetail]] = None

    @model_serializer(mode="wrap")
    def _omit_payloads_unless_requested(self, handler):
        data = handler(self)
        if data.get("pixel_payloads") is None:
            data.pop("pixel_payloads", None)
        return data

class RunMetrics(BaseModel):
    mysql_check_ms: int
    pixel_send_ms: int
    db_write_ms: int

class DryRunMetrics(BaseModel):
    mysql_check_ms: int

class PixelRunResult(BaseModel):
    """Normal and dry-run result; the summary/metrics variant encodes the mode."""
    execution: ExecutionInfo
    summary: Union[NormalSummary, DryRunSummary]
    details: RunDetails
    metrics: Union[RunMetrics, DryRunMetrics]

class ErrorInfo(BaseModel):
    code: str
    message: str
    details: Any = None
    stage: str

class PixelRunErrorResult(BaseModel):
    execution: ExecutionInfo
    error: ErrorInfo
    summary: ErrorSummary
