import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.sql import func
from callvoucher.core.database import Base


class CallStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CallType(str, enum.Enum):
    LOCAL = "local"
    NATIONAL = "national"
    INTERNATIONAL = "international"


class CallLog(Base):
    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True)
    call_id = Column(String(50), unique=True, nullable=False, index=True)
    voucher_id = Column(Uuid, ForeignKey("vouchers.id", ondelete="SET NULL"), index=True)
    phone_number = Column(String(20), nullable=False)
    country_code = Column(String(5), nullable=False)
    call_type = Column(String(20), nullable=False)
    duration_seconds = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default=CallStatus.ACTIVE.value, nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    ended_at = Column(DateTime(timezone=True))
    device_id = Column(String(100), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
