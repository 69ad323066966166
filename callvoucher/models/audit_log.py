from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text, Uuid
from sqlalchemy.sql import func
from callvoucher.core.database import Base


class AuditLog(Base):
    __tablename__ = "system_logs"

    id = Column(Integer, primary_key=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(20))
    entity_id = Column(String(64))
    details = Column(JSON, default=dict)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    admin_user_id = Column(Uuid, ForeignKey("admin_users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
