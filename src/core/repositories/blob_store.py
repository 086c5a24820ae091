"""Abstract contract for the authoritative image byte store."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from core.models.image import BlobHandle, BlobStream


class BlobStore(ABC):
    """Contract for storing and retrieving image bytes by name.

    Implementations could be S3, GCS, local disk, etc.
    The image service depends on this interface, not the implementation.
    """

    @abstractmethod
    def put(
        self,
        *,
        name: str,
        data: bytes | Iterable[bytes],
        content_type: str,
        overwrite: bool = False,
    ) -> BlobHandle:
        """Write image bytes under ``name``.

        The object becomes visible only once fully written.

        Raises:
            DuplicateNameError: If ``overwrite`` is False and the name exists
            StorageUnavailableError: If the backend cannot be reached
            ValidationError: If the stream exceeds the configured maximum size
        """

    @abstractmethod
    def get(self, *, name: str) -> BlobStream:
        """Open a readable stream for the named object.

        Raises:
            NotFoundError: If no object exists under ``name``
            StorageUnavailableError: If the backend cannot be reached
        """

    @abstractmethod
    def delete(self, *, handle: BlobHandle) -> None:
        """Delete the object addressed by ``handle``.

        Raises:
            NotFoundError: If the object does not exist
            StorageUnavailableError: If the backend cannot be reached
        """

    @abstractmethod
    def exists(self, *, name: str) -> bool:
        """Return True when an object is stored under ``name``."""
