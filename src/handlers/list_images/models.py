"""
Pydantic models for the admin image listing.
"""

from pydantic import BaseModel, ConfigDict, Field

from core.utils.constants import DEFAULT_LIMIT, DEFAULT_OFFSET, MAX_LIMIT, MIN_LIMIT


class ListImagesRequest(BaseModel):
    """Query parameters of GET /images."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name_contains: str | None = Field(
        None,
        max_length=255,
        description="Case-insensitive substring of the stored or original name",
    )
    limit: int = Field(
        default=DEFAULT_LIMIT,
        ge=MIN_LIMIT,
        le=MAX_LIMIT,
        description="Results per page (1-100)",
    )
    offset: int = Field(
        default=DEFAULT_OFFSET,
        ge=0,
        description="Pagination offset",
    )
