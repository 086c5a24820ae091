"""Name-based filtering for image records."""

from core.models.image import ImageRecord


class NameContainsFilter:
    """Case-insensitive substring match on the stored name.

    Also matches the client's original file name, which is what an
    administrator remembers when names are randomly generated.
    """

    @staticmethod
    def apply(records: list[ImageRecord], search_term: str) -> list[ImageRecord]:
        if not search_term or not search_term.strip():
            return records

        search_lower = search_term.strip().lower()
        return [
            record
            for record in records
            if search_lower in record.name.lower()
            or search_lower in (record.original_filename or "").lower()
        ]
