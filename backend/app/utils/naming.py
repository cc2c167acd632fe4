"""
Storage key naming for uploaded media.

Keys are 32 bytes from ``secrets`` encoded as URL-safe base64 without padding,
followed by the media extension. Video keys are additionally prefixed with the
aspect-ratio bucket so a bucket listing groups landscape and portrait videos:

    thumbnail: "Xb2k...Q.png"
    video:     "landscape/9fQ1...c.mp4"

No lookup against existing storage is performed; with 256 bits of entropy a
collision is not a practical concern.
"""

import base64
import secrets

from enum import Enum


KEY_ENTROPY_BYTES = 32

LANDSCAPE_RATIO = 16 / 9
PORTRAIT_RATIO = 9 / 16
DEFAULT_RATIO_TOLERANCE = 0.01


class AspectRatio(str, Enum):
    """Aspect-ratio buckets for uploaded videos."""

    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    OTHER = "other"

    @property
    def prefix(self) -> str:
        """Path segment used in storage keys."""
        return _PREFIXES[self]


_PREFIXES = {
    AspectRatio.LANDSCAPE: "landscape",
    AspectRatio.PORTRAIT: "portrait",
    AspectRatio.OTHER: "other",
}


def classify_aspect_ratio(
    width: int, height: int, tolerance: float = DEFAULT_RATIO_TOLERANCE
) -> AspectRatio:
    """
    Bucket a width and height into an AspectRatio.

    The ratio ``width / height`` matches a bucket when it is within
    ``tolerance`` of 16/9 or 9/16. Non-positive dimensions are OTHER.

    >>> classify_aspect_ratio(1920, 1080)
    <AspectRatio.LANDSCAPE: '16:9'>
    >>> classify_aspect_ratio(1080, 1920)
    <AspectRatio.PORTRAIT: '9:16'>
    >>> classify_aspect_ratio(1000, 1000)
    <AspectRatio.OTHER: 'other'>
    """
    if width <= 0 or height <= 0:
        return AspectRatio.OTHER

    ratio = width / height
    if abs(ratio - LANDSCAPE_RATIO) <= tolerance:
        return AspectRatio.LANDSCAPE
    if abs(ratio - PORTRAIT_RATIO) <= tolerance:
        return AspectRatio.PORTRAIT
    return AspectRatio.OTHER


def random_token(num_bytes: int = KEY_ENTROPY_BYTES) -> str:
    """Return ``num_bytes`` of randomness as unpadded URL-safe base64."""
    return base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).rstrip(b"=").decode("ascii")


def generate_asset_key(extension: str, aspect_ratio: AspectRatio | None = None) -> str:
    """
    Build a storage key for a new asset.

    Args:
        extension: File extension, with or without the leading dot.
        aspect_ratio: Bucket to prefix the key with (video uploads).

    Returns:
        str: ``"<token>.<ext>"`` or ``"<prefix>/<token>.<ext>"``.
    """
    extension = extension.lstrip(".")
    if not extension:
        raise ValueError("extension must not be empty")

    key = f"{random_token()}.{extension}"
    if aspect_ratio is not None:
        key = f"{aspect_ratio.prefix}/{key}"
    return key


__all__ = [
    "AspectRatio",
    "classify_aspect_ratio",
    "generate_asset_key",
    "random_token",
]
