"""Pytest fixtures, fakes and factories.

The record store is a real SqlRecordStore over an in-memory SQLite database
(single shared connection via StaticPool). The pixel transport is faked.
"""
import json
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure project root on sys.path so 'pixel_sender' resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pixel_sender.main import app  # type: ignore
from pixel_sender.database import Base  # type: ignore
from pixel_sender.api import deps  # type: ignore
from pixel_sender.integrations.base import PixelTransport
from pixel_sender.integrations.record_store import SqlRecordStore
from pixel_sender.models.db import ScraperToken

SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _isolate_records(create_test_db):
    """Every test starts with an empty scraper_tokens table."""
    yield
    session = TestingSessionLocal()
    try:
        session.query(ScraperToken).delete()
        session.commit()
    finally:
        session.close()


# ---------- Fakes ----------

class TrackingRecordStore(SqlRecordStore):
    """SqlRecordStore that remembers every capability call and whether it was closed."""

    def __init__(self, session_factory=TestingSessionLocal):
        super().__init__(session_factory)
        self.lookup_calls: list[set[str]] = []
        self.insert_calls: list[list] = []
        self.update_calls: list = []
        self.closed = False

    def lookup(self, trx_ids):
        self.lookup_calls.append(set(trx_ids))
        return super().lookup(trx_ids)

    def insert_many(self, rows):
        self.insert_calls.append(list(rows))
        super().insert_many(rows)

    def update_one(self, row):
        self.update_calls.append(row)
        super().update_one(row)

    def close(self):
        super().close()
        self.closed = True


class FakeTransport(PixelTransport):
    """Answers per trx_id from ``responses`` (dict body or exception), default OK."""

    def __init__(self, responses: dict | None = None):
        self.responses = responses or {}
        self.sent: list[dict] = []
        self.closed = False

    async def send(self, payload: str):
        body = json.loads(payload)
        self.sent.append(body)
        response = self.responses.get(body["trxId"], {"status": "OK"})
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self):
        self.closed = True


@pytest.fixture()
def store_factory():
    """Factory handing out TrackingRecordStores; ``.created`` lists them (with the database asked for)."""
    created: list[tuple[str, TrackingRecordStore]] = []

    def _create(database: str):
        store = TrackingRecordStore()
        created.append((database, store))
        return store

    _create.created = created  # type: ignore[attr-defined]
    return _create


@pytest.fixture()
def transport_factory():
    """Factory handing out one shared FakeTransport; set ``.responses`` before the run."""
    transport = FakeTransport()
    urls: list[str] = []

    def _create(pixel_url: str):
        urls.append(pixel_url)
        return transport

    _create.transport = transport  # type: ignore[attr-defined]
    _create.urls = urls  # type: ignore[attr-defined]
    return _create


# ---------- Data factory helpers ----------

@pytest.fixture()
def seed_record(db_session):
    def _create(trx_id: str, amount, commission_amount, *, created_at: datetime | None = None):
        row = ScraperToken(
            trx_id=trx_id,
            amount=Decimal(str(amount)),
            commission_amount=Decimal(str(commission_amount)),
            stream="scraper",
            created_at=created_at or datetime(2025, 1, 15, 8, 30, tzinfo=timezone.utc),
        )
        db_session.add(row)
        db_session.commit()
        return row
    return _create


@pytest.fixture()
def make_item():
    def _create(trx_id: str, amount=100, commission_amount=10, **overrides):
        item = {
            "date": "2025-02-01 10:00:00",
            "token": "tok-123",
            "event": "Sale",
            "trx_id": trx_id,
            "io_id": "io-77",
            "commission_amount": commission_amount,
            "amount": amount,
            "currency": "USD",
            "parent_api_call": "Empty",
        }
        item.update(overrides)
        return item
    return _create


# ---------- HTTP ----------

@pytest.fixture()
def client(store_factory, transport_factory):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_store_factory] = lambda: store_factory
    app.dependency_overrides[deps.get_transport_factory] = lambda: transport_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
