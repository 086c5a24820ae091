"""Pydantic models for delete image request/response."""

from pydantic import BaseModel, ConfigDict, Field

from core.utils.constants import IMAGE_ID_PREFIX


class DeleteImageRequest(BaseModel):
    """Validation model for delete image request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    image_id: str = Field(
        ...,
        min_length=len(IMAGE_ID_PREFIX) + 1,
        max_length=64,
        pattern=r"^[A-Za-z0-9_-]+$",
        description="Image ID to delete",
    )


class DeleteImageResponse(BaseModel):
    """Response model for successful image deletion."""

    image_id: str = Field(..., description="Deleted image ID")
    filename: str = Field(..., description="Stored name of the deleted image")
    message: str = Field(..., description="Success message")
    deleted_at: str = Field(..., description="Deletion timestamp")
    deleted_from: list[str] = Field(..., description="Backends the image was removed from")
    stale_references: dict[str, str] = Field(
        default_factory=dict,
        description="Backend references that could not be removed",
    )
