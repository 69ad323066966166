import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from callvoucher.core import database
from callvoucher.core.database import Base, make_engine, make_session_factory
from callvoucher.core.security import hash_password
from callvoucher.main import create_app
from callvoucher.models import AdminUser, Voucher
from callvoucher.services import rate_limit
from callvoucher.services.allocator import CodeAllocator
from callvoucher.services.audit import AuditSink
from callvoucher.services.ledger import VoucherLedger
from callvoucher.services.settlement import CallSettlementEngine


class RecordingAuditSink(AuditSink):
    def __init__(self):
        self.events = []

    def submit(self, event):
        self.events.append(event)

    def actions(self):
        return [event.action for event in self.events]


class FakeRedis:
    def __init__(self):
        self.counts = {}

    def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def expire(self, key, seconds):
        return True

    def delete(self, key):
        self.counts.pop(key, None)

    def ping(self):
        return True


@pytest.fixture()
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}", timeout_seconds=30)
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def audit():
    return RecordingAuditSink()


@pytest.fixture()
def ledger(session_factory, audit):
    return VoucherLedger(session_factory, audit)


@pytest.fixture()
def allocator(session_factory, ledger, audit):
    return CodeAllocator(session_factory, ledger, audit)


@pytest.fixture()
def settlement(session_factory, ledger, audit):
    return CallSettlementEngine(session_factory, ledger, audit)


@pytest.fixture()
def make_voucher(ledger, allocator):
    def _make(duration=60, code=None):
        return ledger.create(duration, code or allocator.generate_code())

    return _make


@pytest.fixture()
def load_voucher(session_factory):
    def _load(voucher_id):
        with session_factory() as db:
            return db.get(Voucher, voucher_id)

    return _load


@pytest.fixture()
def force_balance(session_factory):
    def _force(voucher_id, **values):
        with session_factory() as db, db.begin():
            db.execute(update(Voucher).where(Voucher.id == voucher_id).values(**values))

    return _force


@pytest.fixture()
def admin(session_factory):
    with session_factory() as db, db.begin():
        user = AdminUser(username="admin", password_hash=hash_password("adminpassword"))
        db.add(user)
    return user


@pytest.fixture()
def app(session_factory, audit, monkeypatch):
    monkeypatch.setattr(rate_limit.validate_limiter, "client", FakeRedis())
    monkeypatch.setattr(rate_limit.login_limiter, "client", FakeRedis())
    application = create_app(session_factory, audit)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[database.get_db] = override_get_db
    return application


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def admin_headers(client, admin):
    response = client.post("/api/v1/admin/login", json={"username": "admin", "password": "adminpassword"})
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
