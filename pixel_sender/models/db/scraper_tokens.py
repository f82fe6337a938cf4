"""SQLAlchemy model for previously transmitted conversions (one row per trx_id)."""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Integer, String, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from pixel_sender.config import RECORD_STORE_SETTINGS
from pixel_sender.database import Base

AMOUNT_SCALE = RECORD_STORE_SETTINGS["amount_scale"]

class ScraperToken(Base):
    __tablename__ = RECORD_STORE_SETTINGS["table"]

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Uniqueness is what makes a repeated insert fail loudly.
    trx_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, AMOUNT_SCALE), nullable=False, default=0)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(14, AMOUNT_SCALE), nullable=False, default=0)
    stream: Mapped[str] = mapped_column(String(64), nullable=False, default=RECORD_STORE_SETTINGS["stream_tag"])
    # Creation time, overwritten on every update.
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<ScraperToken trx_id={self.trx_id!r} amount={self.amount} commission={self.commission_amount}>"
