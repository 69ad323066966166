import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.sql import func
from callvoucher.core.database import Base


class VoucherBatch(Base):
    __tablename__ = "voucher_batches"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_name = Column(String(100))
    quantity = Column(Integer, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    created_by = Column(Uuid, ForeignKey("admin_users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_vouchers_duration_positive"),
        CheckConstraint(
            "remaining_minutes >= 0 AND remaining_minutes <= duration_minutes",
            name="ck_vouchers_remaining_bounds",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(20), unique=True, nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    remaining_minutes = Column(Integer, nullable=False)
    is_used = Column(Boolean, default=False, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    device_id = Column(String(100), index=True)
    used_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))
    batch_id = Column(Uuid, ForeignKey("voucher_batches.id"))
    created_by = Column(Uuid, ForeignKey("admin_users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
