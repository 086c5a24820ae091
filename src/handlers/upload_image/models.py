"""Pydantic models for image upload request/response."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.utils.constants import MAX_CAPTION_LENGTH, MAX_FILENAME_LENGTH


class ImageUploadRequest(BaseModel):
    """Text parts of the multipart upload form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    filename: str | None = Field(
        None,
        max_length=MAX_FILENAME_LENGTH,
        description="Client file name from the form part",
    )
    caption: str | None = Field(
        None,
        max_length=MAX_CAPTION_LENGTH,
        description="Optional image caption",
    )

    @field_validator("filename", "caption")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return value or None


class ImageUploadResponse(BaseModel):
    """Response model for successful image upload."""

    image_id: str = Field(..., description="Unique image ID")
    filename: str = Field(..., description="Canonical stored image name")
    url: str = Field(..., description="Canonical reference, e.g. /images/{name}")
    content_type: str = Field(..., description="Detected MIME type")
    size_bytes: int = Field(..., description="Image size in bytes")
    caption: str | None = Field(None, description="Image caption")
    mirror_status: str = Field(..., description="State of the mirror copy")
    created_at: str = Field(..., description="Creation timestamp")
    message: str = Field(..., description="Success message")
