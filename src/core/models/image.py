"""Shared image models: catalog record, backend handles and payloads."""

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator

from core.models.errors import ValidationError
from core.models.pagination import PaginationInfo
from core.utils.constants import MIRROR_STATUS_PENDING, MIRROR_STATUS_SYNCED

MirrorStatus = Literal["pending", "synced", "failed", "disabled"]
ImageSource = Literal["mirror", "blob", "fallback"]


class BlobHandle(BaseModel):
    """Opaque reference to bytes held by the blob store."""

    model_config = ConfigDict(frozen=True)

    key: StrictStr = Field(..., min_length=1, description="Blob store object key")


class MirrorHandle(BaseModel):
    """Reference to an image copy held by the external mirror."""

    model_config = ConfigDict(frozen=True)

    public_url: StrictStr = Field(..., description="Public delivery URL on the mirror")
    external_id: StrictStr = Field(..., description="Mirror-side public id")


class BackendRefs(BaseModel):
    """Backend-specific projections of one logical image."""

    blob_key: StrictStr | None = Field(None, description="Blob store key")
    mirror_public_id: StrictStr | None = Field(None, description="Mirror public id")
    mirror_url: StrictStr | None = Field(None, description="Mirror delivery URL")


class ImageRecord(BaseModel):
    """Catalog entry unifying both backend handles under one identity."""

    image_id: StrictStr = Field(..., description="System-assigned image identifier")
    name: StrictStr = Field(..., description="Canonical stored image name")
    original_filename: StrictStr | None = Field(None, description="Client-supplied file name")
    content_type: StrictStr = Field(..., description="Detected MIME type")
    size_bytes: StrictInt = Field(..., ge=0, description="Image size in bytes")
    file_hash: StrictStr | None = Field(None, description="SHA-256 of the content")
    caption: StrictStr | None = Field(None, description="Optional caption")

    created_at: StrictStr = Field(..., description="ISO-8601 creation timestamp (UTC)")
    updated_at: StrictStr | None = Field(None, description="ISO-8601 last update timestamp (UTC)")

    backend_refs: BackendRefs = Field(default_factory=BackendRefs)
    mirror_status: MirrorStatus = Field(MIRROR_STATUS_PENDING)

    @model_validator(mode="after")
    def _require_a_backend(self) -> "ImageRecord":
        refs = self.backend_refs
        if not refs.blob_key and not refs.mirror_public_id:
            raise ValueError("ImageRecord must reference at least one backend")
        return self

    @property
    def mirror_available(self) -> bool:
        """True when the mirror holds a confirmed copy."""
        return (
            self.mirror_status == MIRROR_STATUS_SYNCED
            and bool(self.backend_refs.mirror_public_id)
        )

    def to_item(self) -> dict[str, Any]:
        """Serialize for DynamoDB (None values are omitted)."""
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "ImageRecord":
        """Build a record from a DynamoDB item (numbers arrive as Decimal)."""
        data = dict(item)
        size = data.get("size_bytes")
        if isinstance(size, Decimal):
            data["size_bytes"] = int(size)
        return cls.model_validate(data)


class ListImagesResponse(BaseModel):
    """Paginated response for listing catalog records."""

    images: list[ImageRecord] = Field(..., description="List of image records")
    total_count: StrictInt = Field(..., description="Total number of records matching the query")
    returned_count: StrictInt = Field(..., description="Number of records returned in this response")
    pagination: PaginationInfo = Field(..., description="Pagination metadata")


@dataclass
class BlobStream:
    """Readable byte stream returned by a storage backend.

    Backends translate their own read errors inside ``chunks`` so consumers
    only ever see ``ImageServiceError`` subclasses.
    """

    chunks: Iterator[bytes]
    content_type: str | None = None
    content_length: int | None = None
    close: Callable[[], None] = field(default=lambda: None)

    def read(self, max_bytes: int | None = None) -> bytes:
        """Drain the stream into memory, closing it afterwards."""
        buffer = bytearray()
        try:
            for chunk in self.chunks:
                buffer.extend(chunk)
                if max_bytes is not None and len(buffer) > max_bytes:
                    raise ValidationError(
                        message="Stored image exceeds the maximum size",
                        details={"max_bytes": max_bytes},
                    )
        finally:
            self.close()
        return bytes(buffer)


@dataclass(frozen=True)
class ImagePayload:
    """Bytes ready to be served to a client."""

    content: bytes
    content_type: str
    source: ImageSource
    name: str

