import sqlite3
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from callvoucher.core.database import Base, _is_timeout, make_engine, make_session_factory
from callvoucher.core.errors import StorageTimeout, StorageUnavailable
from callvoucher.models import AdminUser
from callvoucher.services.ledger import VoucherLedger


class DriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def test_open_request_session_does_not_block_core_writes(session_factory, ledger, load_voucher):
    with session_factory() as db:
        db.execute(select(AdminUser)).all()
        assert db.in_transaction()

        voucher = ledger.create(10, "OPENREAD0001")
        assert ledger.debit(voucher.id, 3) == 7

    assert load_voucher(voucher.id).remaining_minutes == 7


def test_debit_times_out_while_write_lock_is_held(tmp_path, audit):
    path = tmp_path / "locked.db"
    engine = make_engine(f"sqlite:///{path}", timeout_seconds=0.2)
    Base.metadata.create_all(bind=engine)
    ledger = VoucherLedger(make_session_factory(engine), audit)
    voucher = ledger.create(10, "LOCKED000001")

    holder = sqlite3.connect(path, isolation_level=None)
    try:
        holder.execute("BEGIN IMMEDIATE")
        with pytest.raises(StorageTimeout):
            ledger.debit(voucher.id, 4)
    finally:
        holder.execute("ROLLBACK")
        holder.close()

    assert ledger.get(voucher.id).remaining_minutes == 10
    engine.dispose()


def test_unreachable_database_is_storage_unavailable(tmp_path, audit):
    engine = make_engine(f"sqlite:///{tmp_path / 'missing' / 'voucher.db'}", timeout_seconds=0.2)
    ledger = VoucherLedger(make_session_factory(engine), audit)

    with pytest.raises(StorageUnavailable):
        ledger.debit(uuid.uuid4(), 1)
    engine.dispose()


@pytest.mark.parametrize(
    "orig,expected",
    [
        (DriverError("canceling statement due to statement timeout", "57014"), True),
        (DriverError("could not obtain lock on row", "55P03"), True),
        (DriverError("database is locked"), True),
        (DriverError("connection refused", "08006"), False),
    ],
)
def test_is_timeout(orig, expected):
    assert _is_timeout(OperationalError("SELECT 1", {}, orig)) is expected
