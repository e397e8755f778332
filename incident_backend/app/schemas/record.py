"""
Record Pydantic schemas.

Defines the versioned incident record, its create/update inputs and the
structured outcome of a submission.
"""

import enum
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from incident_backend.app.schemas.common import CamelModel

CURRENT_SCHEMA_VERSION = 2


def _coerce_articles(value):
    # Earlier schema kept a single classification string
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return value


class Record(CamelModel):
    """One logged incident as held by the storage adapter."""
    id: str
    individual_name: str
    external_id: Optional[str] = None
    date_time: datetime
    location: str
    reason: str
    articles: List[str] = Field(default_factory=list)
    observations: Optional[str] = None
    seized_items: Optional[str] = None
    responsible_officers: str
    screenshots: List[str] = Field(default_factory=list)
    created_by: str
    created_at: datetime
    edited_by: Optional[str] = None
    edited_at: Optional[datetime] = None
    schema_version: int = CURRENT_SCHEMA_VERSION

    @field_validator("articles", mode="before")
    @classmethod
    def normalize_articles(cls, value):
        return _coerce_articles(value)


class RecordCreate(CamelModel):
    """Field values for a new record, already collected by the caller."""
    individual_name: str = Field(..., min_length=1, max_length=200)
    external_id: Optional[str] = Field(None, max_length=100)
    location: str = Field(..., min_length=1, max_length=500)
    reason: str = Field(..., min_length=1, max_length=2000)
    articles: List[str] = Field(default_factory=list)
    observations: Optional[str] = Field(None, max_length=5000)
    seized_items: Optional[str] = Field(None, max_length=5000)
    responsible_officers: str = Field(..., min_length=1, max_length=1000)
    date_time: Optional[datetime] = Field(None, description="Event time; defaults to submission time")

    class Config:
        str_strip_whitespace = True

    @field_validator("articles", mode="before")
    @classmethod
    def normalize_articles(cls, value):
        return _coerce_articles(value)


class SubmissionRequest(RecordCreate):
    """A create-form submission: record fields, evidence and sink selection."""
    screenshots: List[str] = Field(default_factory=list, description="Image data URLs or stored image URLs")
    save_to_storage: bool = True
    send_notification: bool = True


class RecordUpdate(CamelModel):
    """Partial update; only fields explicitly set are merged."""
    individual_name: Optional[str] = Field(None, min_length=1, max_length=200)
    external_id: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, min_length=1, max_length=500)
    reason: Optional[str] = Field(None, min_length=1, max_length=2000)
    articles: Optional[List[str]] = None
    observations: Optional[str] = Field(None, max_length=5000)
    seized_items: Optional[str] = Field(None, max_length=5000)
    responsible_officers: Optional[str] = Field(None, min_length=1, max_length=1000)
    date_time: Optional[datetime] = None
    screenshots: Optional[List[str]] = None

    class Config:
        str_strip_whitespace = True


# Fields that may be cleared by an explicit null in an update
NULLABLE_UPDATE_FIELDS = frozenset({"external_id", "observations", "seized_items"})


class SinkStatus(str, enum.Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class SubmissionStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    PARTIALLY_SUCCEEDED = "partially_succeeded"
    FAILED = "failed"


class SinkResult(CamelModel):
    """Result of one sink (storage or notification) within a submission."""
    status: SinkStatus
    error_code: Optional[str] = None
    message: Optional[str] = None

    @property
    def attempted(self) -> bool:
        return self.status != SinkStatus.SKIPPED

    @property
    def ok(self) -> bool:
        return self.status == SinkStatus.OK


class SubmissionOutcome(CamelModel):
    """Structured result the caller renders after a submission."""
    status: SubmissionStatus
    message: str
    record: Optional[Record] = None
    storage: SinkResult
    notification: SinkResult
    warnings: List[str] = Field(default_factory=list)
    audit_entry_id: Optional[str] = None
