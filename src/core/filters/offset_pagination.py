"""
Offset-based pagination utilities.
"""

from typing import TypeVar

from core.utils.constants import (
    DEFAULT_LIMIT,
    DEFAULT_OFFSET,
    MAX_LIMIT,
    MIN_LIMIT,
)

ItemT = TypeVar("ItemT")


class OffsetPagination:
    """
    Offset-based pagination helper.

    Typical usage:
    1. Validate offset and limit parameters
    2. Apply pagination to a list of items
    """

    @staticmethod
    def paginate(
        items: list[ItemT],
        offset: int = DEFAULT_OFFSET,
        limit: int = DEFAULT_LIMIT,
    ) -> tuple[list[ItemT], int, bool]:
        """
        Slice one page out of ``items``.

        Returns:
            (page_items, total_count, has_more)

        Example:
            paginate([1, 2, 3, 4, 5], offset=0, limit=2) → ([1, 2], 5, True)
        """
        total_count = len(items)
        paginated_items = items[offset : offset + limit]
        has_more = offset + limit < total_count

        return paginated_items, total_count, has_more

    @staticmethod
    def validate(limit: int, offset: int) -> tuple[bool, str]:
        """
        Validate pagination parameters.

        Returns:
            (is_valid, error_message); the message is empty when valid
        """
        if limit < MIN_LIMIT:
            return False, f"Limit must be at least {MIN_LIMIT}"

        if limit > MAX_LIMIT:
            return False, f"Limit must not exceed {MAX_LIMIT}"

        if offset < 0:
            return False, "Offset must be zero or a positive integer"

        return True, ""
