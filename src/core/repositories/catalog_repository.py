"""Abstract contract for the image metadata catalog."""

from abc import ABC, abstractmethod

from core.models.image import ImageRecord


class ImageCatalog(ABC):
    """Contract for storing and retrieving ``ImageRecord`` entries.

    Implementations could be DynamoDB, PostgreSQL, MongoDB, etc.
    """

    @abstractmethod
    def create_record(self, *, record: ImageRecord) -> None:
        """Insert a new record.

        Raises:
            DuplicateNameError: If a record with the same id already exists
            CatalogError: If creation fails
        """

    @abstractmethod
    def fetch_record(self, *, image_id: str) -> ImageRecord | None:
        """Fetch a record by id, or None if absent.

        Raises:
            CatalogError: If the lookup fails
        """

    @abstractmethod
    def fetch_record_by_name(self, *, name: str) -> ImageRecord | None:
        """Fetch the most recent record stored under ``name``.

        Raises:
            CatalogError: If the lookup fails
        """

    @abstractmethod
    def update_mirror_state(
        self,
        *,
        image_id: str,
        mirror_status: str,
        mirror_public_id: str | None = None,
        mirror_url: str | None = None,
    ) -> None:
        """Record the outcome of the detached mirror upload.

        Raises:
            NotFoundError: If the record no longer exists
            CatalogError: If the update fails
        """

    @abstractmethod
    def update_caption(self, *, image_id: str, caption: str | None) -> ImageRecord:
        """Replace the caption and return the updated record.

        Raises:
            NotFoundError: If the record does not exist
            CatalogError: If the update fails
        """

    @abstractmethod
    def remove_record(self, *, image_id: str) -> None:
        """Remove a record.

        Raises:
            CatalogError: If deletion fails
        """

    @abstractmethod
    def list_records(self, *, limit: int | None = None) -> list[ImageRecord]:
        """Return records newest first, at most ``limit`` when given.

        Raises:
            CatalogError: If the scan fails
        """
