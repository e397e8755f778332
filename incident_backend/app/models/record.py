"""
Incident record database model.

One row per record. List fields (articles, screenshots) are JSON columns;
screenshots hold public bucket URLs on this backend.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from incident_backend.app.db.session import Base


class IncidentRecord(Base):
    """Incident record row."""
    __tablename__ = "records"

    id = Column(String(36), primary_key=True, index=True)

    # Individual
    individual_name = Column(String(200), nullable=False, index=True)
    external_id = Column(String(100), nullable=True)

    # Incident details
    date_time = Column(DateTime(timezone=True), nullable=False, index=True)
    location = Column(String(500), nullable=False)
    reason = Column(Text, nullable=False)
    articles = Column(JSON, nullable=False, default=list)
    observations = Column(Text, nullable=True)
    seized_items = Column(Text, nullable=True)
    responsible_officers = Column(Text, nullable=False)

    # Evidence
    screenshots = Column(JSON, nullable=False, default=list)

    # Authorship
    created_by = Column(String(100), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    edited_by = Column(String(100), nullable=True)
    edited_at = Column(DateTime(timezone=True), nullable=True)

    schema_version = Column(Integer, nullable=False, default=2)

    def __repr__(self):
        return f"<IncidentRecord(id={self.id}, individual='{self.individual_name}', created_by={self.created_by})>"
