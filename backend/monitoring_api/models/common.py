"""Shapes shared by more than one resource."""

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    """
    Paging metadata returned next to every paginated list.

    has_more is true when another page exists after this one
    (offset + limit < total).
    """
    total: int = Field(..., description="Total matching records")
    limit: int = Field(..., description="Page size used")
    offset: int = Field(..., description="Records skipped")
    has_more: bool = Field(..., description="Whether a further page exists")

    @classmethod
    def build(cls, total: int, limit: int, offset: int) -> "Pagination":
        return cls(total=total, limit=limit, offset=offset, has_more=(offset + limit) < total)
