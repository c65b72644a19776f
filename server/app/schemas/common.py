"""Common Pydantic schemas."""

from typing import Optional

from pydantic import BaseModel, Field

# Ceiling for any single amount. Keeps every derived total, up to a full
# departure at this price, inside a signed 64-bit column.
MAX_AMOUNT = 10**14


class PaginatedResponse(BaseModel):
    """Base class for paginated responses."""

    next_cursor: Optional[str] = Field(None, description="Cursor for next page")
