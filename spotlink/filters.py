"""Paging and sorting filters for list queries."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from spotlink.records import check


@dataclass
class Filters:
    """Requested page, page size and sort order of a list query."""

    page: int = 1
    page_size: int = 20
    sort: str = "id"
    sort_safelist: list[str] = field(default_factory=list)
    submitted_by: str = ""

    def sort_column(self) -> str:
        """Column named by ``sort`` when it is on the safelist."""
        if self.sort in self.sort_safelist:
            return self.sort.removeprefix("-")
        return "unsafe sort parameter: " + self.sort

    def sort_direction(self) -> str:
        return "DESC" if self.sort.startswith("-") else "ASC"

    def limit(self) -> int:
        return self.page_size

    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class Metadata:
    """Paging details that accompany a list result."""

    current_page: int = 0
    page_size: int = 0
    first_page: int = 0
    last_page: int = 0
    total_records: int = 0

    def to_dict(self) -> dict[str, int]:
        """JSON-ready mapping with zero-valued fields left out."""
        return {key: value for key, value in asdict(self).items() if value}


def validate_filters(filters: Filters) -> dict[str, str]:
    """Return validation errors for ``filters``; empty when valid."""
    errors: dict[str, str] = {}
    check(errors, filters.page > 0, "page", "must be greater than zero")
    check(errors, filters.page_size > 0, "page_size", "must be greater than zero")
    check(errors, filters.page <= 10_000_000, "page_size", "must be a maximum of 10 million")
    check(errors, filters.page_size <= 100, "page_size", "must be a maximum of 100")
    check(errors, filters.sort in filters.sort_safelist, "sort", "invalid sort value")
    return errors


def calculate_metadata(total_records: int, page: int, page_size: int) -> Metadata:
    """Build paging metadata; an empty result gets empty metadata."""
    if total_records == 0:
        return Metadata()
    return Metadata(
        current_page=page,
        page_size=page_size,
        first_page=1,
        last_page=-(-total_records // page_size),
        total_records=total_records,
    )