from concurrent.futures import ThreadPoolExecutor
import uuid

import pytest
from sqlalchemy import delete, select

from callvoucher.core.errors import AlreadyTerminal, CallVoucherError, InvalidArgument, NotFound, VoucherUnavailable
from callvoucher.models import CallLog, Voucher
from callvoucher.services.settlement import billed_minutes


def _load_call(session_factory, call_id):
    with session_factory() as db:
        return db.execute(select(CallLog).where(CallLog.call_id == call_id)).scalar_one()


@pytest.mark.parametrize(
    "seconds,minutes",
    [(0, 0), (1, 1), (59, 1), (60, 1), (61, 2), (120, 2), (121, 3), (3600, 60)],
)
def test_billed_minutes_rounds_up(seconds, minutes):
    assert billed_minutes(seconds) == minutes


def test_start_call_opens_active_call(settlement, ledger, make_voucher, session_factory, audit):
    voucher = make_voucher(30)
    ledger.validate(voucher.code, "device-a")

    started = settlement.start_call(voucher.id, "+254700000001", "254", "international")

    assert started.remaining_minutes == 30
    call = _load_call(session_factory, started.call_id)
    assert call.status == "active"
    assert call.voucher_id == voucher.id
    assert call.device_id == "device-a"
    assert call.duration_seconds == 0
    assert call.ended_at is None
    assert audit.actions()[-1] == "call_started"


def test_start_call_accepts_string_voucher_id(settlement, make_voucher):
    voucher = make_voucher(5)
    started = settlement.start_call(str(voucher.id), "0700000001", "254", "local")
    assert started.remaining_minutes == 5


def test_start_call_unknown_voucher(settlement):
    with pytest.raises(VoucherUnavailable):
        settlement.start_call(uuid.uuid4(), "0700000001", "254", "local")


def test_start_call_inactive_voucher(settlement, ledger, make_voucher):
    voucher = make_voucher()
    ledger.validate(voucher.code, "device-a")
    ledger.set_active(voucher.id, False)

    with pytest.raises(VoucherUnavailable):
        settlement.start_call(voucher.id, "0700000001", "254", "local")


def test_start_call_used_voucher(settlement, ledger, make_voucher):
    voucher = make_voucher(2)
    ledger.debit(voucher.id, 2)

    with pytest.raises(VoucherUnavailable):
        settlement.start_call(voucher.id, "0700000001", "254", "local")


def test_start_call_zero_balance_voucher(settlement, make_voucher, force_balance):
    voucher = make_voucher()
    force_balance(voucher.id, remaining_minutes=0)

    with pytest.raises(VoucherUnavailable):
        settlement.start_call(voucher.id, "0700000001", "254", "local")


@pytest.mark.parametrize(
    "phone,country,call_type",
    [("", "254", "local"), ("0700000001", " ", "local"), ("0700000001", "254", "satellite")],
)
def test_start_call_rejects_bad_arguments(settlement, make_voucher, phone, country, call_type):
    voucher = make_voucher()
    with pytest.raises(InvalidArgument):
        settlement.start_call(voucher.id, phone, country, call_type)


def test_start_call_rejects_malformed_voucher_id(settlement):
    with pytest.raises(InvalidArgument):
        settlement.start_call("not-a-uuid", "0700000001", "254", "local")


@pytest.mark.parametrize("seconds,debited", [(1, 1), (60, 1), (61, 2)])
def test_end_call_debits_rounded_minutes(settlement, make_voucher, load_voucher, seconds, debited):
    voucher = make_voucher(30)
    started = settlement.start_call(voucher.id, "0700000001", "254", "national")

    ended = settlement.end_call(started.call_id, seconds)

    assert ended.minutes_used == debited
    assert ended.remaining_minutes == 30 - debited
    assert load_voucher(voucher.id).remaining_minutes == 30 - debited


def test_end_call_completes_call(settlement, make_voucher, session_factory, audit):
    voucher = make_voucher(30)
    started = settlement.start_call(voucher.id, "0700000001", "254", "local")

    settlement.end_call(started.call_id, 95)

    call = _load_call(session_factory, started.call_id)
    assert call.status == "completed"
    assert call.duration_seconds == 95
    assert call.ended_at is not None
    assert audit.actions()[-1] == "call_ended"


def test_end_call_twice_debits_once(settlement, make_voucher, load_voucher):
    voucher = make_voucher(30)
    started = settlement.start_call(voucher.id, "0700000001", "254", "local")
    settlement.end_call(started.call_id, 120)

    with pytest.raises(AlreadyTerminal):
        settlement.end_call(started.call_id, 120)

    assert load_voucher(voucher.id).remaining_minutes == 28


def test_concurrent_end_call_settles_once(settlement, make_voucher, load_voucher):
    voucher = make_voucher(30)
    started = settlement.start_call(voucher.id, "0700000001", "254", "local")

    def attempt(_):
        try:
            settlement.end_call(started.call_id, 300)
            return "ok"
        except AlreadyTerminal:
            return "terminal"

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(attempt, range(8)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("terminal") == 7
    assert load_voucher(voucher.id).remaining_minutes == 25


def test_end_call_unknown_call(settlement):
    with pytest.raises(NotFound):
        settlement.end_call("missing-call", 10)


def test_end_call_rejects_negative_duration(settlement, make_voucher, session_factory):
    voucher = make_voucher()
    started = settlement.start_call(voucher.id, "0700000001", "254", "local")

    with pytest.raises(InvalidArgument):
        settlement.end_call(started.call_id, -1)
    assert _load_call(session_factory, started.call_id).status == "active"


def test_end_call_exhausting_voucher_marks_it_used(settlement, ledger, make_voucher, load_voucher):
    voucher = make_voucher(2)
    started = settlement.start_call(voucher.id, "0700000001", "254", "local")

    ended = settlement.end_call(started.call_id, 600)

    assert ended.remaining_minutes == 0
    stored = load_voucher(voucher.id)
    assert stored.is_used is True
    assert stored.used_at is not None
    assert ledger.validate(voucher.code, "device-a").valid is False


def test_concurrent_calls_can_overdraw_and_clamp(settlement, make_voucher, load_voucher):
    voucher = make_voucher(5)
    first = settlement.start_call(voucher.id, "0700000001", "254", "local")
    second = settlement.start_call(voucher.id, "0700000002", "254", "local")

    settlement.end_call(first.call_id, 240)
    ended = settlement.end_call(second.call_id, 240)

    assert ended.remaining_minutes == 0
    assert load_voucher(voucher.id).is_used is True


def test_end_call_after_voucher_deleted(settlement, make_voucher, session_factory):
    voucher = make_voucher(10)
    started = settlement.start_call(voucher.id, "0700000001", "254", "local")
    with session_factory() as db, db.begin():
        db.execute(delete(Voucher).where(Voucher.id == voucher.id))

    ended = settlement.end_call(started.call_id, 30)

    assert ended.remaining_minutes == 0
    assert _load_call(session_factory, started.call_id).status == "completed"


@pytest.mark.parametrize("status", ["failed", "cancelled"])
def test_abort_call_does_not_debit(settlement, make_voucher, load_voucher, status):
    voucher = make_voucher(10)
    started = settlement.start_call(voucher.id, "0700000001", "254", "local")

    call = settlement.abort_call(started.call_id, status)

    assert call.status == status
    assert call.ended_at is not None
    assert load_voucher(voucher.id).remaining_minutes == 10
    with pytest.raises(AlreadyTerminal):
        settlement.end_call(started.call_id, 60)


def test_abort_call_rejects_completed_status(settlement, make_voucher):
    voucher = make_voucher()
    started = settlement.start_call(voucher.id, "0700000001", "254", "local")
    with pytest.raises(InvalidArgument):
        settlement.abort_call(started.call_id, "completed")


def test_abort_unknown_call(settlement):
    with pytest.raises(NotFound):
        settlement.abort_call("missing-call", "cancelled")


def test_domain_errors_share_base(settlement):
    with pytest.raises(CallVoucherError) as exc_info:
        settlement.end_call("missing-call", 1)
    assert exc_info.value.http_status == 404
