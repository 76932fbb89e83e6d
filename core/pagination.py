"""
core/pagination.py -- Page metadata for limit/offset result sets.

paginate() is pure arithmetic over (limit, offset, count). Query-string
validation is the boundary's job and lives in parse_page_query(); paginate()
assumes it receives integers with limit >= 1.

Final-page size: on the last page of a non-zero offset the reported size is
  count - offset   when count % offset == 0
  count % offset   otherwise
This matches the remaining-row count only when offset is a multiple of the
page stride. Existing clients rely on the numbers as they are, so the formula
is kept verbatim rather than replaced with count - offset.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from core.errors import FailureCause, IdentityFailure


@dataclass(frozen=True)
class PageMetadata:
    total_count: int
    current_page: int
    page_count: int
    page_size: int

    def as_dict(self) -> dict[str, int]:
        """Return the wire shape (camelCase keys) used in list responses."""
        return {
            "totalCount": self.total_count,
            "currentPage": self.current_page,
            "pageCount": self.page_count,
            "pageSize": self.page_size,
        }


def paginate(limit: int, offset: int, count: int) -> PageMetadata:
    """Derive page metadata for one page of a result set of `count` rows.

    A request wider than the data collapses to the whole dataset as one page.
    An empty dataset is reported as a single empty page.
    """
    if count <= 0:
        return PageMetadata(total_count=0, current_page=1, page_count=1, page_size=0)

    limit = min(limit, count)
    offset = min(offset, count)

    page_count = math.ceil(count / limit)
    # An offset clamped to the end of the data would otherwise land one page
    # past the last one.
    current_page = min(offset // limit + 1, page_count)
    page_size = limit

    if current_page == page_count and offset != 0:
        page_size = count - offset if count % offset == 0 else count % offset

    return PageMetadata(
        total_count=count,
        current_page=current_page,
        page_count=page_count,
        page_size=page_size,
    )


# Largest value the store accepts as a LIMIT or OFFSET bind parameter.
MAX_PAGE_VALUE = 2**63 - 1


def _parse_int(value: str | int) -> int:
    if isinstance(value, bool):
        raise ValueError("booleans are not page parameters")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not (text.isascii() and text.lstrip("+-").isdigit()):
        raise ValueError(f"not a decimal integer: {text!r}")
    return int(text, 10)


def parse_page_query(limit: str | int | None, offset: str | int | None) -> tuple[int, int] | None:
    """Validate raw limit/offset query values.

    Returns None when either value is absent -- the caller lists everything
    unpaged. Raises IdentityFailure(MALFORMED_PAGINATION_QUERY) when both are
    present but are not ASCII decimal integers or fall outside
    1 <= limit and 0 <= offset, both capped at MAX_PAGE_VALUE.
    """
    if limit in (None, "") or offset in (None, ""):
        return None
    try:
        parsed_limit = _parse_int(limit)
        parsed_offset = _parse_int(offset)
    except (TypeError, ValueError) as exc:
        raise IdentityFailure(FailureCause.MALFORMED_PAGINATION_QUERY) from exc
    if not (1 <= parsed_limit <= MAX_PAGE_VALUE and 0 <= parsed_offset <= MAX_PAGE_VALUE):
        raise IdentityFailure(FailureCause.MALFORMED_PAGINATION_QUERY)
    return parsed_limit, parsed_offset
