"""
In-memory refinement of catalog listings.

Operates on records already fetched from the catalog; performs no data access.
"""

from aws_lambda_powertools import Logger

from core.filters.name_contains_filter import NameContainsFilter
from core.filters.offset_pagination import OffsetPagination
from core.models.image import ImageRecord

logger = Logger(UTC=True)


class InMemoryImageFilter:
    """Name filtering followed by offset pagination."""

    def __init__(self) -> None:
        self._name_filter = NameContainsFilter()
        self._pagination = OffsetPagination()

    def filter_by_name_contains(
        self,
        records: list[ImageRecord],
        *,
        name_contains: str | None,
    ) -> list[ImageRecord]:
        if not name_contains:
            return records

        return self._name_filter.apply(records, name_contains)

    def paginate(
        self,
        records: list[ImageRecord],
        *,
        offset: int,
        limit: int,
    ) -> tuple[list[ImageRecord], int, bool]:
        """
        Apply offset-based pagination.

        Returns:
            (page_records, total_count, has_more)

        Raises:
            ValueError: If pagination parameters are invalid
        """
        is_valid, error_message = self._pagination.validate(limit, offset)
        if not is_valid:
            logger.error(
                "Invalid pagination parameters",
                extra={"limit": limit, "offset": offset, "error": error_message},
            )
            raise ValueError(error_message)

        return self._pagination.paginate(records, offset, limit)
