from .scraper_tokens import ScraperToken
from .enums import Classification, DispatchStatus, ErrorStage, RunMode

__all__ = [
    "ScraperToken",
    "Classification",
    "DispatchStatus",
    "ErrorStage",
    "RunMode",
]
