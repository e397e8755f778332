"""
User database model.

This module defines the User SQLAlchemy model for the remote backend.
"""

from sqlalchemy import Column, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from incident_backend.app.db.session import Base
from incident_backend.app.models.enums import UserRole


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    """
    User model for authentication and user management.

    `is_owner` marks the single application owner account. It is a stable
    flag, independent of role and username.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)

    role = Column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        default=UserRole.PENDING,
        nullable=False,
    )
    is_owner = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_activity = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}', owner={self.is_owner})>"
