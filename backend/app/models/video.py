"""
Video record models for Tubely.

A video record is created by the (external) video creation flow and later
receives a thumbnail locator and a video locator from the upload endpoints.
Only the owning user may change the locators.

Records are stored in MongoDB with the record id as a string ``_id``; see
``to_document`` / ``from_document`` for the mapping.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LocatorField(str, Enum):
    """Record fields that hold a stored-asset locator."""

    THUMBNAIL = "thumbnail_url"
    VIDEO = "video_url"


class Video(BaseModel):
    """
    Pydantic model for a video record.

    Attributes:
        id: Record identifier (immutable)
        user_id: Owning user (immutable)
        title: Display title
        description: Free-form description
        thumbnail_url: Locator of the current thumbnail, if any
        video_url: Locator of the current video file, if any
        created_at: Creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)

    Example:
        ```python
        video = Video(user_id=owner_id, title="Boots", description="Unboxing")
        ```
    """

    id: UUID = Field(default_factory=uuid4, description="Video identifier")

    user_id: UUID = Field(..., description="Identifier of the owning user")

    title: str = Field(..., min_length=1, max_length=200, description="Video title")

    description: str = Field(default="", max_length=5000, description="Video description")

    thumbnail_url: str | None = Field(default=None, description="Thumbnail locator")

    video_url: str | None = Field(default=None, description="Video file locator")

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Creation timestamp (UTC)"
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Last modification timestamp (UTC)"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "5b7a3c4e-64c8-4b3e-8b1a-0f2d3c4b5a69",
                "user_id": "0b1c2d3e-4f50-4617-8293-a4b5c6d7e8f9",
                "title": "Boots unboxing",
                "description": "First look",
                "thumbnail_url": "http://localhost:8091/assets/Xb2kQ.png",
                "video_url": "tubely-media,landscape/9fQ1c.mp4",
                "created_at": "2025-01-15T10:30:00Z",
                "updated_at": "2025-01-15T10:32:00Z",
            }
        },
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v

    def with_locator(self, field: LocatorField, locator: str) -> "Video":
        """Return a copy with ``field`` set to ``locator`` and a fresh ``updated_at``."""
        return self.model_copy(
            update={field.value: locator, "updated_at": datetime.now(UTC)}
        )

    def to_document(self) -> dict[str, Any]:
        """Serialize for MongoDB: string ids, ``_id`` key."""
        document = self.model_dump(exclude={"id"})
        document["_id"] = str(self.id)
        document["user_id"] = str(self.user_id)
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Video":
        """Build a Video from a MongoDB document."""
        data = dict(document)
        data["id"] = data.pop("_id")
        return cls.model_validate(data)


__all__ = ["LocatorField", "Video"]
