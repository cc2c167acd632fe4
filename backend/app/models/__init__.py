"""
Models Package for Tubely.

Pydantic models shared by the record store, the upload pipeline and the API
responses.

Example Usage:
    ```python
    from app.models import LocatorField, Video

    video = Video(user_id=owner_id, title="Boots unboxing")
    updated = video.with_locator(LocatorField.THUMBNAIL, locator)
    ```
"""

from app.models.video import LocatorField, Video


__all__ = ["LocatorField", "Video"]
