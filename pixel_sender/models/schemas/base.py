"""
Response envelope for API-level rejections (runs that never started).
"""
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from pydantic import BaseModel, Field

class ResponseBase(BaseModel):
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None

class RejectedRun(ResponseBase):
    """Batch refused before any lookup, send or write happened."""
    success: bool = False
