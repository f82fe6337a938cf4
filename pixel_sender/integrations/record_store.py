"""SQLAlchemy-backed record store over the ``scraper_tokens`` table.

One instance per run. The session is opened lazily on first use and released
in ``close()``, which the orchestrator calls on every exit path.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Sequence

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pixel_sender.database import session_factory_for
from pixel_sender.integrations.base import RecordInsert, RecordStore, RecordUpdate, StoredRecord
from pixel_sender.models.db import ScraperToken
from pixel_sender.services.errors import MutationError, RecordLookupError
from pixel_sender.utils import get_logger
from pixel_sender.utils.amounts import to_decimal, to_stored_amount

logger = get_logger(__name__)


def _db_error_message(exc: SQLAlchemyError) -> str:
    return str(getattr(exc, "orig", None) or exc)


class SqlRecordStore(RecordStore):
    def __init__(self, session_factory: sessionmaker | None = None, *, database: str | None = None):
        self._session_factory = session_factory or session_factory_for(database)
        self._session: Session | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            self._session = self._session_factory()
        return self._session

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def lookup(self, trx_ids: Iterable[str]) -> list[StoredRecord]:
        ids = sorted(set(trx_ids))
        if not ids:
            return []
        stmt = select(
            ScraperToken.trx_id,
            ScraperToken.amount,
            ScraperToken.commission_amount,
            ScraperToken.created_at,
        ).where(ScraperToken.trx_id.in_(ids))
        try:
            rows = self.session.execute(stmt).all()
            # release the read transaction; writes come much later
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RecordLookupError(f"Record lookup failed: {e.__class__.__name__}", details=_db_error_message(e)) from e
        return [
            StoredRecord(
                trx_id=row.trx_id,
                amount=to_stored_amount(row.amount),
                commission_amount=to_stored_amount(row.commission_amount),
                created_at=_as_utc(row.created_at),
            )
            for row in rows
        ]

    def insert_many(self, rows: Sequence[RecordInsert]) -> None:
        if not rows:
            return
        stmt = insert(ScraperToken).values([
            {
                "trx_id": row.trx_id,
                "amount": to_stored_amount(row.amount),
                "commission_amount": to_stored_amount(row.commission_amount),
                "stream": row.stream,
                "created_at": row.created_at,
            }
            for row in rows
        ])
        try:
            self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise MutationError(f"Batch insert failed: {e.__class__.__name__}", details=_db_error_message(e)) from e

    def update_one(self, row: RecordUpdate) -> None:
        stmt = (
            update(ScraperToken)
            .where(ScraperToken.trx_id == row.trx_id)
            .values(
                amount=to_stored_amount(row.amount),
                commission_amount=to_stored_amount(row.commission_amount),
                created_at=row.written_at,
            )
        )
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise MutationError(f"Update failed for {row.trx_id}: {e.__class__.__name__}", details=_db_error_message(e)) from e
        if result.rowcount == 0:
            logger.warning("Update matched no stored record", trx_id=row.trx_id)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


__all__ = ["SqlRecordStore"]
