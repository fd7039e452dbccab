"""Common schemas used across the application."""

import math

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(CamelModel):
    """Every response carries an explicit success flag and a message."""
    success: bool = True
    message: str


class PaginatedEnvelope(Envelope):
    """Page metadata shared by the task and activity-log listings.

    Returns:
        {
            "success": true,
            "message": "...",
            "count": 10,
            "total": 42,
            "totalPages": 5,
            "currentPage": 1,
            ...
        }
    """
    count: int
    total: int
    total_pages: int
    current_page: int


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


class UserRef(CamelModel):
    """A user reference expanded to name and email."""
    id: str
    name: str
    email: str
