import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import and_, case, func, select, true, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from callvoucher.core.database import SessionFactory, transaction
from callvoucher.core.errors import Conflict, InvalidArgument, NotFound
from callvoucher.models import CallLog, CallStatus, Voucher
from callvoucher.schemas import DashboardSummary, PaginatedVouchers, VoucherValidation
from callvoucher.services.audit import AuditSink

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 20


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def require_positive_duration(duration_minutes: int) -> None:
    if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool) or duration_minutes <= 0:
        raise InvalidArgument("durationMinutes must be a positive integer")


class VoucherLedger:
    """Sole writer of voucher balances and usage flags.

    Every balance-affecting change is a single conditional UPDATE so that
    concurrent writers on the same voucher serialize in storage and writers
    on different vouchers never wait on each other.
    """

    def __init__(self, session_factory: SessionFactory, audit: AuditSink):
        self._session_factory = session_factory
        self._audit = audit

    def create(
        self,
        duration_minutes: int,
        code: str,
        created_by: UUID | None = None,
        batch_id: UUID | None = None,
        expires_at: datetime | None = None,
    ) -> Voucher:
        with transaction(self._session_factory, "create voucher") as db:
            voucher = self.insert(db, duration_minutes, code, created_by, batch_id, expires_at)
        self._audit.emit(
            "voucher_created",
            "voucher",
            voucher.id,
            {"durationMinutes": duration_minutes, "code": voucher.code},
            admin_user_id=created_by,
        )
        return voucher

    def insert(
        self,
        db: Session,
        duration_minutes: int,
        code: str,
        created_by: UUID | None = None,
        batch_id: UUID | None = None,
        expires_at: datetime | None = None,
    ) -> Voucher:
        """Insert a voucher inside the caller's transaction.

        The insert runs in a SAVEPOINT so a duplicate code raises Conflict
        without poisoning the enclosing transaction.
        """
        require_positive_duration(duration_minutes)
        normalized = normalize_code(code)
        if not normalized or len(normalized) > MAX_CODE_LENGTH or not (normalized.isascii() and normalized.isalnum()):
            raise InvalidArgument("Voucher code must be 1-20 alphanumeric characters")
        voucher = Voucher(
            code=normalized,
            duration_minutes=duration_minutes,
            remaining_minutes=duration_minutes,
            is_used=False,
            is_active=True,
            device_id=None,
            batch_id=batch_id,
            created_by=created_by,
            expires_at=expires_at,
        )
        try:
            with db.begin_nested():
                db.add(voucher)
        except IntegrityError as exc:
            raise Conflict(f"Voucher code {normalized} already exists") from exc
        return voucher

    def code_exists(self, db: Session, code: str) -> bool:
        return db.execute(select(Voucher.id).where(Voucher.code == normalize_code(code))).first() is not None

    def get(self, voucher_id: UUID) -> Voucher:
        with transaction(self._session_factory, "get voucher") as db:
            voucher = db.get(Voucher, voucher_id)
            if voucher is None:
                raise NotFound("Voucher", voucher_id)
            return voucher

    def list_vouchers(self, status: str | None = None, page: int = 1, limit: int = 50) -> PaginatedVouchers:
        """Page through vouchers, newest first.

        status is one of active (usable), used or inactive; None lists all.
        """
        query = select(Voucher)
        if status == "active":
            query = query.where(Voucher.is_active.is_(True), Voucher.is_used.is_(False))
        elif status == "used":
            query = query.where(Voucher.is_used.is_(True))
        elif status == "inactive":
            query = query.where(Voucher.is_active.is_(False))
        elif status is not None:
            raise InvalidArgument(f"Unsupported status filter {status!r}")
        if page < 1 or limit < 1:
            raise InvalidArgument("page and limit must be positive")

        with transaction(self._session_factory, "list vouchers") as db:
            total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
            items = (
                db.execute(
                    query.order_by(Voucher.created_at.desc(), Voucher.code)
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return PaginatedVouchers(items=items, total=total, page=page, limit=limit)

    def summary(self) -> DashboardSummary:
        with transaction(self._session_factory, "voucher summary") as db:

            def count(model, *conditions):
                return db.execute(select(func.count()).select_from(model).where(*conditions)).scalar_one()

            usable = (Voucher.is_active.is_(True), Voucher.is_used.is_(False))
            unused_minutes = db.execute(
                select(func.coalesce(func.sum(Voucher.remaining_minutes), 0)).where(*usable)
            ).scalar_one()
            total_duration = db.execute(
                select(func.coalesce(func.sum(CallLog.duration_seconds), 0))
            ).scalar_one()
            return DashboardSummary(
                total_vouchers=count(Voucher),
                unused_vouchers=count(Voucher, *usable),
                used_vouchers=count(Voucher, Voucher.is_used.is_(True)),
                inactive_vouchers=count(Voucher, Voucher.is_active.is_(False)),
                unused_minutes=unused_minutes,
                total_calls=count(CallLog),
                active_calls=count(CallLog, CallLog.status == CallStatus.ACTIVE.value),
                completed_calls=count(CallLog, CallLog.status == CallStatus.COMPLETED.value),
                total_duration_seconds=total_duration,
            )

    def validate(self, code: str, device_id: str | None) -> VoucherValidation:
        normalized = normalize_code(code)
        with transaction(self._session_factory, "validate voucher") as db:
            voucher = db.execute(select(Voucher).where(Voucher.code == normalized)).scalar_one_or_none()
            if (
                voucher is None
                or not voucher.is_active
                or voucher.is_used
                or voucher.remaining_minutes <= 0
            ):
                return VoucherValidation(valid=False, remaining_minutes=0, voucher_id=None)
            if not device_id:
                logger.info("Voucher %s validated without a device id; not bound", voucher.id)
            elif voucher.device_id is None:
                self._bind_device(db, voucher.id, device_id)
            elif voucher.device_id != device_id:
                # second device is accepted but never rebinds the voucher
                logger.info(
                    "Voucher %s bound to another device; validation from %s not rebound",
                    voucher.id,
                    device_id,
                )
            return VoucherValidation(
                valid=True,
                remaining_minutes=voucher.remaining_minutes,
                voucher_id=voucher.id,
            )

    def _bind_device(self, db: Session, voucher_id: UUID, device_id: str) -> bool:
        result = db.execute(
            update(Voucher)
            .where(Voucher.id == voucher_id, Voucher.device_id.is_(None))
            .values(device_id=device_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        bound = result.rowcount == 1
        if bound:
            logger.info("Voucher %s bound to device %s", voucher_id, device_id)
        return bound

    def debit(self, voucher_id: UUID, minutes_used: int) -> int:
        with transaction(self._session_factory, "debit voucher") as db:
            return self.apply_debit(db, voucher_id, minutes_used)

    def apply_debit(self, db: Session, voucher_id: UUID, minutes_used: int) -> int:
        """Debit minutes in one UPDATE ... RETURNING and return the new balance.

        The balance clamps at zero; is_used and used_at are set the first
        time the balance reaches zero and never overwritten afterwards.
        """
        if minutes_used < 0:
            raise InvalidArgument("minutesUsed must not be negative")
        now = utcnow()
        new_balance = Voucher.remaining_minutes - minutes_used
        exhausted = new_balance <= 0
        row = db.execute(
            update(Voucher)
            .where(Voucher.id == voucher_id)
            .values(
                remaining_minutes=case((exhausted, 0), else_=new_balance),
                is_used=case((exhausted, true()), else_=Voucher.is_used),
                used_at=case(
                    (and_(exhausted, Voucher.used_at.is_(None)), now),
                    else_=Voucher.used_at,
                ),
                updated_at=now,
            )
            .returning(Voucher.remaining_minutes, Voucher.is_used)
            .execution_options(synchronize_session=False)
        ).one_or_none()
        if row is None:
            raise NotFound("Voucher", voucher_id)
        logger.info(
            "Debited %s min from voucher %s, %s remaining",
            minutes_used,
            voucher_id,
            row.remaining_minutes,
        )
        return row.remaining_minutes

    def set_active(self, voucher_id: UUID, is_active: bool, admin_user_id: UUID | None = None) -> Voucher:
        with transaction(self._session_factory, "set voucher status") as db:
            found = db.execute(
                update(Voucher)
                .where(Voucher.id == voucher_id)
                .values(is_active=is_active, updated_at=utcnow())
                .returning(Voucher.id)
                .execution_options(synchronize_session=False)
            ).one_or_none()
            if found is None:
                raise NotFound("Voucher", voucher_id)
            voucher = db.get(Voucher, voucher_id)
        self._audit.emit(
            "voucher_status_changed",
            "voucher",
            voucher_id,
            {"isActive": is_active},
            admin_user_id=admin_user_id,
        )
        return voucher

    def deactivate_expired(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        with transaction(self._session_factory, "deactivate expired vouchers") as db:
            result = db.execute(
                update(Voucher)
                .where(
                    Voucher.is_active.is_(True),
                    Voucher.expires_at.is_not(None),
                    Voucher.expires_at <= now,
                )
                .values(is_active=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            count = result.rowcount
        if count:
            logger.info("Deactivated %s expired vouchers", count)
            self._audit.emit("vouchers_expired", "voucher", "*", {"count": count})
        return count
