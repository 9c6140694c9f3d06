"""
Filtering, sorting and pagination for the assignment tables.

Status and region narrow the SQL query; practice and free-text search are
matched in Python because practices and assignees are stored as
comma-joined lists.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.assignment import AssignmentStatus, PENDING_PRACTICE, split_names


STATUS_ORDER = {
    AssignmentStatus.PENDING: 0,
    AssignmentStatus.UNASSIGNED: 1,
    AssignmentStatus.ASSIGNED: 2,
}

SORT_OPTIONS = ("newest", "oldest", "customer", "status")


@dataclass
class AssignmentFilters:
    status: List[AssignmentStatus] = field(default_factory=list)
    practice: List[str] = field(default_factory=list)
    region: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[str] = None  # Inclusive, YYYY-MM-DD
    date_to: Optional[str] = None
    sort: str = "newest"
    page: int = 1
    page_size: int = 25


def matches_practice(record, practices: Sequence[str]) -> bool:
    if not practices:
        return True
    wanted = set(practices)
    record_practices = set(split_names(record.practice)) or {PENDING_PRACTICE}
    return bool(wanted & record_practices)


def search_text(record) -> str:
    parts = [
        str(record.display_number),
        record.customer_name,
        record.am,
        getattr(record, record.assignee_field),
        getattr(record, "project_number", ""),
        getattr(record, "project_description", ""),
        getattr(record, "opportunity_id", ""),
        getattr(record, "opportunity_name", ""),
    ]
    return " ".join(p for p in parts if p).lower()


def sort_key(sort: str):
    if sort == "customer":
        return lambda r: (r.customer_name or "").lower()
    if sort == "status":
        return lambda r: (STATUS_ORDER.get(r.status, 99), _newest_first(r))
    return lambda r: (r.request_date or "", r.created_at)


def _newest_first(record) -> float:
    return -record.created_at.timestamp() if record.created_at else 0.0


def apply_filters(records: Sequence, filters: AssignmentFilters) -> List:
    """Practice/search/date filtering and sorting over already-loaded records."""
    selected = [
        r for r in records
        if matches_practice(r, filters.practice)
        and (not filters.search or filters.search.lower() in search_text(r))
        and (not filters.date_from or (r.request_date or "") >= filters.date_from)
        and (not filters.date_to or (r.request_date or "") <= filters.date_to)
    ]

    sort = filters.sort if filters.sort in SORT_OPTIONS else "newest"
    reverse = sort == "newest"
    return sorted(selected, key=sort_key(sort), reverse=reverse)


def paginate(records: Sequence, page: int, page_size: int) -> List:
    start = (max(page, 1) - 1) * page_size
    return list(records[start:start + page_size])


async def query_assignments(
    db: AsyncSession,
    model,
    filters: AssignmentFilters
) -> Tuple[List, int]:
    """Return one page of matching records and the total match count."""
    query = select(model)
    if filters.status:
        query = query.where(model.status.in_(filters.status))
    if filters.region:
        query = query.where(model.region == filters.region)

    result = await db.execute(query)
    matched = apply_filters(result.scalars().all(), filters)
    return paginate(matched, filters.page, filters.page_size), len(matched)
