"""Audit Log Model - administrative trail of user and booking actions"""
from enum import Enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class AuditAction(str, Enum):
    user_created = "user_created"
    user_activated = "user_activated"
    user_deactivated = "user_deactivated"
    user_deleted = "user_deleted"
    password_changed = "password_changed"
    login_blocked = "login_blocked"
    booking_created = "booking_created"
    booking_approved = "booking_approved"
    booking_dispatched = "booking_dispatched"
    booking_completed = "booking_completed"
    booking_rejected = "booking_rejected"
    booking_updated = "booking_updated"
    booking_deleted = "booking_deleted"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(40), nullable=False, index=True)

    # Subject of the action
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # Who did it; NULL for the system actor
    performed_by_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    role = Column(String(20), nullable=True)

    details = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    status = Column(String(10), nullable=False, default="success")

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", foreign_keys=[user_id])
    performed_by = relationship("User", foreign_keys=[performed_by_id])

    __table_args__ = (
        Index("ix_audit_logs_user_created", "user_id", "created_at"),
        Index("ix_audit_logs_action_created", "action", "created_at"),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action={self.action}, user_id={self.user_id})>"
