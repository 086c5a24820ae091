"""Pydantic models for caption updates."""

from pydantic import BaseModel, ConfigDict, Field

from core.utils.constants import MAX_CAPTION_LENGTH


class UpdateImageRequest(BaseModel):
    """Body of PATCH /images/{image_id}; ``null`` clears the caption."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    image_id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    caption: str | None = Field(..., max_length=MAX_CAPTION_LENGTH)
