"""
Dependencies for database sessions and the per-run record store / pixel transport.
"""
from typing import Generator
from sqlalchemy.orm import Session
from pixel_sender.database import SessionLocal
from pixel_sender.services.pixel_engine import (
    StoreFactory,
    TransportFactory,
    default_store_factory,
    default_transport_factory,
)
from pixel_sender.utils import get_logger

logger = get_logger(__name__)

def get_db() -> Generator[Session, None, None]:
    """Session on the default record store database (health checks only; runs use their own store)."""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Health check session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()

def get_store_factory() -> StoreFactory:
    """Builds one record store per run; overridden in tests."""
    return default_store_factory

def get_transport_factory() -> TransportFactory:
    """Builds one pixel transport per run; overridden in tests."""
    return default_transport_factory
