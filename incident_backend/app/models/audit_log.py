"""
Audit Log Database Model.

Append-only history of privileged actions on records and accounts.
"""

from sqlalchemy import Column, String, Text, DateTime, JSON, Enum
from sqlalchemy.sql import func
from incident_backend.app.db.session import Base
from incident_backend.app.models.enums import AuditAction


class AuditLog(Base):
    """
    Audit log model for tracking privileged actions.

    Events logged:
    - create / edit / delete (records, with a snapshot on delete)
    - role_change (approvals and role changes)
    - user_remove (rejections and deletions)
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, index=True)

    action = Column(
        Enum(AuditAction, name="audit_action", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )

    # Who performed the action
    performed_by = Column(String(100), nullable=False)

    # Who or what was acted upon
    target_user = Column(String(100), nullable=True)
    target_record = Column(JSON, nullable=True)

    details = Column(Text, nullable=False, default="")

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', performed_by={self.performed_by}, target={self.target_user})>"
