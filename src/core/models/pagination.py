"""Offset pagination metadata attached to catalog listings."""

from pydantic import BaseModel, Field, StrictBool, StrictInt


class PaginationInfo(BaseModel):
    """Where a returned page sits inside the full filtered listing."""

    limit: StrictInt = Field(..., description="Page size requested by the caller")
    offset: StrictInt = Field(..., description="Index of the first record on this page")
    has_more: StrictBool = Field(..., description="True when records exist past this page")
    next_offset: StrictInt | None = Field(
        None,
        description="Offset of the following page; null on the last page",
    )

    @classmethod
    def for_page(cls, *, limit: int, offset: int, returned: int, has_more: bool) -> "PaginationInfo":
        return cls(
            limit=limit,
            offset=offset,
            has_more=has_more,
            next_offset=offset + returned if has_more else None,
        )
