"""Capability interfaces the pipeline is wired against.

The core never talks to a database driver or an HTTP client directly; it is
handed a RecordStore (lookup + writes) and a PixelTransport (send). Concrete
implementations live next to this module; tests inject fakes.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Sequence


@dataclass(frozen=True)
class StoredRecord:
    """Snapshot of a persisted row as seen by the lookup."""
    trx_id: str
    amount: Decimal
    commission_amount: Decimal
    created_at: datetime | None = None


@dataclass(frozen=True)
class RecordInsert:
    trx_id: str
    amount: Any
    commission_amount: Any
    stream: str
    created_at: datetime


@dataclass(frozen=True)
class RecordUpdate:
    trx_id: str
    amount: Any
    commission_amount: Any
    written_at: datetime


class RecordStore(ABC):
    """Record store scoped to one run; ``close`` must run on every exit path."""

    @abstractmethod
    def lookup(self, trx_ids: Iterable[str]) -> list[StoredRecord]:
        """Return at most one record per requested id, in one round trip."""

    @abstractmethod
    def insert_many(self, rows: Sequence[RecordInsert]) -> None:
        """Insert all rows as a single statement. Existing ids must raise."""

    @abstractmethod
    def update_one(self, row: RecordUpdate) -> None:
        """Overwrite amount, commission and write time for one id."""

    def close(self) -> None:
        pass

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class PixelTransport(ABC):
    @abstractmethod
    async def send(self, payload: str) -> Dict[str, Any]:
        """Send one payload; returns ``{"status": "OK"}`` or ``{"status": "ERROR", "error": ...}``.

        May raise instead of returning an error body.
        """

    async def aclose(self) -> None:
        pass

    async def __aenter__(self) -> "PixelTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
