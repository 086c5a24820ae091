from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from core.utils.constants import MAX_FILENAME_LENGTH


class GetImageRequest(BaseModel):
    """Validation model for get image request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: StrictStr = Field(
        ...,
        min_length=1,
        max_length=MAX_FILENAME_LENGTH,
        description="Canonical image name to serve",
    )

    @field_validator("name")
    @classmethod
    def validate_single_segment(cls, value: str) -> str:
        if "/" in value or "\\" in value or value in {".", ".."}:
            raise ValueError("Invalid image name")
        return value
