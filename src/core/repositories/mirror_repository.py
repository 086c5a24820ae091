"""Abstract contract for the external image mirror (CDN)."""

from abc import ABC, abstractmethod

from core.models.image import BlobStream, MirrorHandle


class ImageMirror(ABC):
    """Best-effort secondary copy of images on a hosted image service.

    Every failure surfaces as ``MirrorError`` or ``NotFoundError`` so callers
    can recover locally.
    """

    @abstractmethod
    def upload(self, *, data: bytes, suggested_name: str) -> MirrorHandle:
        """Upload bytes and return the mirror-side handle.

        Raises:
            MirrorError: On any upload failure or timeout
        """

    @abstractmethod
    def fetch(self, *, public_id: str, url: str | None = None) -> BlobStream:
        """Single bounded attempt to read the copy stored under ``public_id``.

        ``url`` is the delivery URL recorded at upload time, when known.

        Raises:
            NotFoundError: If the mirror answers 404
            MirrorError: On timeouts, connection errors or other statuses
        """

    @abstractmethod
    def delete(self, *, public_id: str) -> None:
        """Remove an image from the mirror.

        Raises:
            NotFoundError: If the mirror holds no such image
            MirrorError: On any other failure
        """

    @abstractmethod
    def public_url(self, *, public_id: str) -> str:
        """Deterministic delivery URL for ``public_id``."""
