"""
Integrations package initialization.
Exports the record store and pixel transport implementations.
"""
from .base import PixelTransport, RecordInsert, RecordStore, RecordUpdate, StoredRecord
from .record_store import SqlRecordStore
from .trafficpoint import TrafficPointTransport

__all__ = [
    "PixelTransport",
    "RecordStore",
    "StoredRecord",
    "RecordInsert",
    "RecordUpdate",
    "SqlRecordStore",
    "TrafficPointTransport",
]
