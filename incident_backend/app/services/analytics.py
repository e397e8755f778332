"""
Analytics Service.

Read-only projections over the record collection: grouping by individual and
storage utilization. Recomputed on every call.
"""

from collections import OrderedDict
from typing import Iterable, List

from incident_backend.app.core.permissions import CallerSession, Capability, can_view, require_capability
from incident_backend.app.schemas.analytics import IndividualSummary, StorageUsage
from incident_backend.app.schemas.record import Record
from incident_backend.app.storage.base import StorageBackend
from incident_backend.app.storage.translation import sort_newest_first


def group_individuals(records: Iterable[Record]) -> List[IndividualSummary]:
    """
    Group records by lowercased individual name.

    The display name is the newest record's original casing. Groups are
    ordered by size, largest first; ties keep newest-first order.
    """
    groups: "OrderedDict[str, List[Record]]" = OrderedDict()
    for record in sort_newest_first(records):
        groups.setdefault(record.individual_name.strip().lower(), []).append(record)

    summaries = [
        IndividualSummary(name=items[0].individual_name, count=len(items), last_record=items[0])
        for items in groups.values()
    ]
    summaries.sort(key=lambda s: s.count, reverse=True)
    return summaries


def usage_report(used_bytes: int, capacity_bytes: int, warning_ratio: float) -> StorageUsage:
    percentage = min(100.0, (used_bytes / capacity_bytes) * 100) if capacity_bytes > 0 else 100.0
    return StorageUsage(
        used_bytes=used_bytes,
        capacity_bytes=capacity_bytes,
        percentage=round(percentage, 2),
        warning=percentage >= warning_ratio * 100,
    )


class AnalyticsService:

    @staticmethod
    async def list_individuals(backend: StorageBackend, session: CallerSession) -> List[IndividualSummary]:
        """Individuals visible to the caller, most-recorded first."""
        require_capability(session, Capability.VIEW)
        records = [
            r for r in await backend.list_records()
            if can_view(session.role, r.created_by, session.username)
        ]
        return group_individuals(records)

    @staticmethod
    async def get_storage_usage(backend: StorageBackend, warning_ratio: float = 0.8) -> StorageUsage:
        return usage_report(await backend.usage_bytes(), backend.capacity_bytes(), warning_ratio)
