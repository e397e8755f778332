"""
Runtime settings database model.

A single row holding the operator-editable settings object as JSON.
"""

from sqlalchemy import Column, Integer, DateTime, JSON
from sqlalchemy.sql import func
from incident_backend.app.db.session import Base


class AppSettingsRow(Base):
    __tablename__ = "app_settings"

    id = Column(Integer, primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
