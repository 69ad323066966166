import logging
import math
import uuid
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from callvoucher.core.database import SessionFactory, transaction
from callvoucher.core.errors import AlreadyTerminal, InvalidArgument, NotFound, VoucherUnavailable
from callvoucher.models import CallLog, CallStatus, CallType, Voucher
from callvoucher.schemas import CallEnded, CallOut, CallStarted
from callvoucher.services.audit import AuditSink
from callvoucher.services.ledger import VoucherLedger, utcnow

logger = logging.getLogger(__name__)

SECONDS_PER_BILLED_MINUTE = 60

ABORT_STATUSES = (CallStatus.FAILED, CallStatus.CANCELLED)


def billed_minutes(duration_seconds: int) -> int:
    """Bill every started minute: 1s -> 1, 60s -> 1, 61s -> 2."""
    return math.ceil(duration_seconds / SECONDS_PER_BILLED_MINUTE)


def _as_uuid(value: object, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise InvalidArgument(f"{field} is not a valid id") from exc


class CallSettlementEngine:
    """Opens calls against a voucher and settles them into minute debits.

    Call state machine: active -> completed | failed | cancelled. Terminal
    states are never left; the transition out of active is a conditional
    UPDATE so only one caller can settle a given call.
    """

    def __init__(self, session_factory: SessionFactory, ledger: VoucherLedger, audit: AuditSink):
        self._session_factory = session_factory
        self._ledger = ledger
        self._audit = audit

    def start_call(
        self,
        voucher_id: UUID | str,
        phone_number: str,
        country_code: str,
        call_type: CallType | str,
    ) -> CallStarted:
        voucher_id = _as_uuid(voucher_id, "voucherId")
        phone_number = (phone_number or "").strip()
        country_code = (country_code or "").strip()
        if not phone_number:
            raise InvalidArgument("phoneNumber is required")
        if not country_code:
            raise InvalidArgument("countryCode is required")
        try:
            call_type = CallType(call_type)
        except ValueError as exc:
            raise InvalidArgument(f"Unsupported callType {call_type!r}") from exc

        call_id = str(uuid.uuid4())
        with transaction(self._session_factory, "start call") as db:
            voucher = db.execute(
                select(Voucher).where(
                    Voucher.id == voucher_id,
                    Voucher.is_active.is_(True),
                    Voucher.is_used.is_(False),
                )
            ).scalar_one_or_none()
            if voucher is None:
                raise VoucherUnavailable("Invalid or expired voucher")
            if voucher.remaining_minutes <= 0:
                raise VoucherUnavailable("No minutes remaining on voucher")
            db.add(
                CallLog(
                    call_id=call_id,
                    voucher_id=voucher.id,
                    phone_number=phone_number,
                    country_code=country_code,
                    call_type=call_type.value,
                    duration_seconds=0,
                    status=CallStatus.ACTIVE.value,
                    started_at=utcnow(),
                    device_id=voucher.device_id,
                )
            )
            remaining = voucher.remaining_minutes

        logger.info("Call %s started on voucher %s", call_id, voucher_id)
        self._audit.emit(
            "call_started",
            "call",
            call_id,
            {"phoneNumber": phone_number, "callType": call_type.value, "voucherId": str(voucher_id)},
        )
        return CallStarted(call_id=call_id, remaining_minutes=remaining)

    def end_call(self, call_id: str, actual_duration_seconds: int) -> CallEnded:
        if (
            not isinstance(actual_duration_seconds, int)
            or isinstance(actual_duration_seconds, bool)
            or actual_duration_seconds < 0
        ):
            raise InvalidArgument("actualDurationSeconds must be a non-negative integer")
        minutes_used = billed_minutes(actual_duration_seconds)

        with transaction(self._session_factory, "end call") as db:
            voucher_id = self._leave_active(
                db, call_id, CallStatus.COMPLETED, duration_seconds=actual_duration_seconds
            )
            if voucher_id is None:
                logger.warning("Call %s has no voucher left to debit", call_id)
                remaining = 0
            else:
                remaining = self._ledger.apply_debit(db, voucher_id, minutes_used)

        self._audit.emit(
            "call_ended",
            "call",
            call_id,
            {"durationSeconds": actual_duration_seconds, "minutesUsed": minutes_used},
        )
        return CallEnded(call_id=call_id, minutes_used=minutes_used, remaining_minutes=remaining)

    def abort_call(self, call_id: str, status: CallStatus | str) -> CallOut:
        try:
            status = CallStatus(status)
        except ValueError as exc:
            raise InvalidArgument(f"Unsupported status {status!r}") from exc
        if status not in ABORT_STATUSES:
            raise InvalidArgument("A call can only be aborted as failed or cancelled")

        with transaction(self._session_factory, "abort call") as db:
            self._leave_active(db, call_id, status)
            call = db.execute(select(CallLog).where(CallLog.call_id == call_id)).scalar_one()
            result = CallOut.model_validate(call)

        logger.info("Call %s marked %s", call_id, status.value)
        self._audit.emit("call_aborted", "call", call_id, {"status": status.value})
        return result

    def _leave_active(
        self,
        db: Session,
        call_id: str,
        status: CallStatus,
        duration_seconds: int | None = None,
    ) -> UUID | None:
        now: datetime = utcnow()
        values = {"status": status.value, "ended_at": now, "updated_at": now}
        if duration_seconds is not None:
            values["duration_seconds"] = duration_seconds
        row = db.execute(
            update(CallLog)
            .where(CallLog.call_id == call_id, CallLog.status == CallStatus.ACTIVE.value)
            .values(**values)
            .returning(CallLog.voucher_id)
            .execution_options(synchronize_session=False)
        ).one_or_none()
        if row is None:
            current = db.execute(
                select(CallLog.status).where(CallLog.call_id == call_id)
            ).scalar_one_or_none()
            if current is None:
                raise NotFound("Call", call_id)
            raise AlreadyTerminal(call_id, current)
        return row.voucher_id
