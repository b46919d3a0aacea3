"""In-memory search, sort and pagination of user listings."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

from pyuca import Collator

from .models import UserRecord

SEARCHABLE_FIELDS = ("name", "email")
SORTABLE_FIELDS = ("name", "email")
SORT_DIRECTIONS = ("asc", "desc")


@lru_cache(maxsize=1)
def _collator() -> Collator:
    # Loading the collation element table is slow, so it happens once per process.
    return Collator()


def collation_key(value: str) -> Tuple[int, ...]:
    """Sort key following the Unicode Collation Algorithm.

    Accents and case only break ties between otherwise equal strings, with
    lowercase ordered before uppercase.
    """

    return _collator().sort_key(value)


@dataclass(frozen=True)
class UserQuery:
    page: int = 1
    page_size: Optional[int] = None
    search: Optional[str] = None
    sort: Optional[str] = None

    def normalized(self) -> "UserQuery":
        """Clamp the page to 1 and treat a non-positive page size as no limit."""

        page = self.page if self.page >= 1 else 1
        page_size = self.page_size if self.page_size is not None and self.page_size > 0 else None
        return UserQuery(page=page, page_size=page_size, search=self.search, sort=self.sort)


@dataclass(frozen=True)
class SearchFilter:
    """A parsed ``search`` expression.

    ``field`` is ``None`` for a bare term that matches name or email.
    """

    term: str
    field: Optional[str] = None

    @classmethod
    def parse(cls, search: Optional[str]) -> Optional["SearchFilter"]:
        if not search:
            return None
        lowered = search.lower()
        if ":" in lowered:
            field_name, term = lowered.split(":", 1)
            return cls(term=term, field=field_name)
        return cls(term=lowered)

    def matches(self, record: UserRecord) -> bool:
        if self.field is None:
            return self.term in record.name.lower() or self.term in record.email.lower()
        if self.field == "name":
            return self.term in record.name.lower()
        if self.field == "email":
            return self.term in record.email.lower()
        return False


@dataclass(frozen=True)
class SortOrder:
    field: str
    descending: bool = False

    @classmethod
    def parse(cls, sort: Optional[str]) -> Optional["SortOrder"]:
        if not sort:
            return None
        parts = sort.split(":")
        if len(parts) != 2:
            return None
        field_name, direction = parts
        if direction not in SORT_DIRECTIONS:
            return None
        return cls(field=field_name, descending=direction == "desc")

    def apply(self, records: Sequence[UserRecord]) -> List[UserRecord]:
        if self.field not in SORTABLE_FIELDS:
            return list(records)
        return sorted(
            records,
            key=lambda record: collation_key(getattr(record, self.field)),
            reverse=self.descending,
        )


@dataclass(frozen=True)
class PaginationResult:
    page_number: int
    page_size: Optional[int]
    count: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool
    data: List[Dict[str, object]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "page_number": self.page_number,
            "page_size": self.page_size,
            "count": self.count,
            "total_pages": self.total_pages,
            "has_previous_page": self.has_previous_page,
            "has_next_page": self.has_next_page,
            "data": [dict(item) for item in self.data],
        }


def filter_users(records: Sequence[UserRecord], search: Optional[str]) -> List[UserRecord]:
    parsed = SearchFilter.parse(search)
    if parsed is None:
        return list(records)
    return [record for record in records if parsed.matches(record)]


def sort_users(records: Sequence[UserRecord], sort: Optional[str]) -> List[UserRecord]:
    order = SortOrder.parse(sort)
    if order is None:
        return list(records)
    return order.apply(records)


def paginate(
    records: Sequence[UserRecord], page: int, page_size: Optional[int]
) -> Tuple[List[UserRecord], int]:
    """Slice one page out of ``records`` and return it with the page count."""

    total = len(records)
    if page_size is None:
        start = 0
        end = total
        total_pages = 1 if total else 0
    else:
        start = (page - 1) * page_size
        end = min(start + page_size, total)
        total_pages = math.ceil(total / page_size)
    return list(records[start:end]), total_pages


def project_user(record: UserRecord) -> Dict[str, object]:
    return {"id": record.id, "name": record.name, "email": record.email}


def list_users(records: Sequence[UserRecord], query: UserQuery) -> PaginationResult:
    """Filter, sort, paginate and project a snapshot of user records."""

    query = query.normalized()
    matched = filter_users(records, query.search)
    ordered = sort_users(matched, query.sort)
    page_records, total_pages = paginate(ordered, query.page, query.page_size)

    return PaginationResult(
        page_number=query.page,
        page_size=query.page_size,
        count=len(page_records),
        total_pages=total_pages,
        has_previous_page=query.page > 1,
        has_next_page=query.page < total_pages,
        data=[project_user(record) for record in page_records],
    )


__all__ = [
    "PaginationResult",
    "SearchFilter",
    "SortOrder",
    "UserQuery",
    "collation_key",
    "filter_users",
    "list_users",
    "paginate",
    "project_user",
    "sort_users",
]
