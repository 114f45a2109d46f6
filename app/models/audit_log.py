"""
AuditLog model - append-only trail of admin actions
"""
import uuid

from sqlalchemy import Column, DateTime, String, Uuid

from app.database import Base, JSONType, utcnow


class AuditLog(Base):
    """
    Audit logs table - rows are inserted, never updated or deleted
    """
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)  # acting admin
    action = Column(String(64), nullable=False, index=True)
    target_type = Column(String(64), nullable=False)
    target_id = Column(String(64))
    details = Column(JSONType)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<AuditLog(action={self.action}, target={self.target_type}:{self.target_id})>"
