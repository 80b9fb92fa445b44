"""
Base schemas for import models.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base for records read from the catalog.

    Features:
        - Auto-trim whitespace from strings
        - Immutable once built (snapshots are point-in-time)
        - Unknown columns from the database are ignored
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        frozen=True,
        extra="ignore"
    )


class ResponseSchema(BaseModel):
    """
    Base for API response bodies.

    Built from service dataclasses, so attribute access is allowed.
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )
