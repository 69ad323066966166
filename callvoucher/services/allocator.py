import logging
import secrets
import string
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from callvoucher.core.config import settings
from callvoucher.core.database import SessionFactory, transaction
from callvoucher.core.errors import Conflict, InvalidArgument, StorageUnavailable
from callvoucher.models import Voucher, VoucherBatch
from callvoucher.schemas import BatchCreated
from callvoucher.services.audit import AuditSink
from callvoucher.services.ledger import VoucherLedger, require_positive_duration

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


class CodeAllocator:
    """Generates voucher codes and creates vouchers under them.

    The existence pre-check only saves a round trip; uniqueness is enforced
    by the unique index on vouchers.code, and a collision on insert is
    retried with a fresh code.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        ledger: VoucherLedger,
        audit: AuditSink,
        code_length: int = settings.voucher_code_length,
        max_attempts: int = settings.code_allocation_max_attempts,
        max_batch_quantity: int = settings.max_batch_quantity,
    ):
        self._session_factory = session_factory
        self._ledger = ledger
        self._audit = audit
        self.code_length = code_length
        self.max_attempts = max_attempts
        self.max_batch_quantity = max_batch_quantity

    def generate_code(self) -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(self.code_length))

    def allocate_unique(
        self,
        duration_minutes: int,
        created_by: UUID | None = None,
        expires_at: datetime | None = None,
    ) -> Voucher:
        require_positive_duration(duration_minutes)
        with transaction(self._session_factory, "allocate voucher") as db:
            voucher = self._allocate(db, duration_minutes, created_by, None, expires_at)
        self._audit.emit(
            "voucher_created",
            "voucher",
            voucher.id,
            {"durationMinutes": duration_minutes, "code": voucher.code},
            admin_user_id=created_by,
        )
        return voucher

    def allocate_batch(
        self,
        quantity: int,
        duration_minutes: int,
        created_by: UUID | None = None,
        batch_name: str | None = None,
        expires_at: datetime | None = None,
    ) -> BatchCreated:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or not 1 <= quantity <= self.max_batch_quantity:
            raise InvalidArgument(f"quantity must be between 1 and {self.max_batch_quantity}")
        require_positive_duration(duration_minutes)

        with transaction(self._session_factory, "allocate voucher batch") as db:
            batch = VoucherBatch(
                batch_name=batch_name,
                quantity=quantity,
                duration_minutes=duration_minutes,
                created_by=created_by,
            )
            db.add(batch)
            db.flush()
            codes = [
                self._allocate(db, duration_minutes, created_by, batch.id, expires_at).code
                for _ in range(quantity)
            ]
            batch_id = batch.id

        logger.info("Created voucher batch %s with %s vouchers", batch_id, quantity)
        self._audit.emit(
            "voucher_batch_created",
            "voucher_batch",
            batch_id,
            {"quantity": quantity, "durationMinutes": duration_minutes},
            admin_user_id=created_by,
        )
        return BatchCreated(batch_id=batch_id, codes=codes, total=len(codes))

    def _allocate(
        self,
        db: Session,
        duration_minutes: int,
        created_by: UUID | None,
        batch_id: UUID | None,
        expires_at: datetime | None,
    ) -> Voucher:
        for attempt in range(1, self.max_attempts + 1):
            code = self.generate_code()
            if self._ledger.code_exists(db, code):
                logger.warning("Voucher code collision (attempt %s/%s)", attempt, self.max_attempts)
                continue
            try:
                return self._ledger.insert(db, duration_minutes, code, created_by, batch_id, expires_at)
            except Conflict:
                logger.warning(
                    "Voucher code taken concurrently (attempt %s/%s)", attempt, self.max_attempts
                )
        raise StorageUnavailable(
            f"Could not allocate a unique voucher code after {self.max_attempts} attempts"
        )
