"""
Analytics Schemas.

Read-only projections derived from the record collection.
"""

from typing import List

from incident_backend.app.schemas.common import CamelModel
from incident_backend.app.schemas.record import Record


class IndividualSummary(CamelModel):
    """Records grouped under one case-insensitive individual name."""
    name: str
    count: int
    last_record: Record


class IndividualListResponse(CamelModel):
    individuals: List[IndividualSummary]
    total: int


class StorageUsage(CamelModel):
    """Estimated backend utilization against its configured ceiling."""
    used_bytes: int
    capacity_bytes: int
    percentage: float
    warning: bool

    @property
    def used_mb(self) -> float:
        return round(self.used_bytes / (1024 * 1024), 2)

    @property
    def capacity_mb(self) -> float:
        return round(self.capacity_bytes / (1024 * 1024), 2)
