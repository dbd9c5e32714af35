"""
Base schemas and mixins for all models.
"""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class TimestampMixin(BaseModel):
    """Add timestamps to response models."""
    created_at: datetime
    updated_at: Optional[datetime] = None


class Pagination(BaseModel):
    """Pagination block returned next to list items."""
    total_items: int
    total_pages: int
    current_page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.current_page - 1) * self.limit

    @classmethod
    def create(cls, total_items: int, page: int, limit: int) -> "Pagination":
        """Build pagination for a page of results."""
        total_pages = (total_items + limit - 1) // limit  # Ceiling division
        return cls(
            total_items=total_items,
            total_pages=total_pages,
            current_page=page,
            limit=limit
        )
