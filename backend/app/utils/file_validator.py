"""
Media Type and Size Validation Utilities for Tubely

This module decides whether an uploaded part may be stored for a given upload
kind:
- Media type parsing (parameters stripped, lowercased, syntax checked)
- Exact set-membership classification against the accepted types per kind
- Size budget enforcement per kind (thumbnails 10 MiB, videos 1 GiB by default)
- Storage extension lookup for accepted media types

Accepted media types:
- thumbnail: image/jpeg, image/png
- video: video/mp4

Only the declared content type of the multipart part is inspected. Content
sniffing is not performed.
"""

import re

from enum import Enum

from app.config import Settings
from app.core.errors import FileTooLargeError, InvalidMediaTypeError, UnsupportedMediaTypeError


# =============================================================================
# CONSTANTS - Upload Kinds and Accepted Types
# =============================================================================


class UploadKind(str, Enum):
    """The two upload kinds handled by the API."""

    THUMBNAIL = "thumbnail"
    VIDEO = "video"


# Accepted media types per upload kind. Membership is an exact set test.
ACCEPTED_MEDIA_TYPES: dict[UploadKind, frozenset[str]] = {
    UploadKind.THUMBNAIL: frozenset({"image/jpeg", "image/png"}),
    UploadKind.VIDEO: frozenset({"video/mp4"}),
}

# Extension used for the storage key of each accepted media type
MEDIA_TYPE_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpeg",
    "image/png": "png",
    "video/mp4": "mp4",
}

BYTES_PER_KB: int = 1024


# =============================================================================
# CONSTANTS - Media Type Grammar
# =============================================================================

# token = 1*tchar (RFC 9110 section 5.6.2)
_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_QUOTED_STRING = r'"(?:[^"\\]|\\.)*"'

_MEDIA_TYPE_REGEX = re.compile(rf"({_TOKEN}/{_TOKEN})(.*)", re.DOTALL)
# Zero or more "; name=value" parameters; empty segments and a trailing ';' are tolerated
_PARAMETERS_REGEX = re.compile(
    rf"(?:[ \t]*;[ \t]*(?:{_TOKEN}=(?:{_TOKEN}|{_QUOTED_STRING}))?)*[ \t]*"
)


# =============================================================================
# MEDIA TYPE VALIDATION
# =============================================================================


def parse_media_type(value: str | None) -> str:
    """
    Parse a declared Content-Type value into its bare ``type/subtype``.

    Parameters such as ``charset`` are validated for syntax and then dropped.
    The result is lowercased.

    Args:
        value: The declared Content-Type header value of the upload part.

    Returns:
        str: The normalized media type, e.g. ``"image/png"``.

    Raises:
        InvalidMediaTypeError: If the value is missing or not a syntactically
            valid media type.

    Example:
        >>> parse_media_type("Image/PNG; charset=binary")
        'image/png'
    """
    if value is None or not value.strip():
        raise InvalidMediaTypeError("Content-Type is missing")

    match = _MEDIA_TYPE_REGEX.fullmatch(value.strip())
    if match is None:
        raise InvalidMediaTypeError(f"Invalid Content-Type '{value}'")

    media_type, parameters = match.groups()
    if not _PARAMETERS_REGEX.fullmatch(parameters):
        raise InvalidMediaTypeError(f"Invalid Content-Type parameters '{parameters.strip()}'")

    return media_type.lower()


def classify_media_type(value: str | None, kind: UploadKind) -> str:
    """
    Accept or reject a declared media type for an upload kind.

    Args:
        value: The declared Content-Type header value.
        kind: The upload kind the part was sent for.

    Returns:
        str: The normalized media type when it is accepted for ``kind``.

    Raises:
        InvalidMediaTypeError: If the value cannot be parsed.
        UnsupportedMediaTypeError: If the parsed type is not accepted for ``kind``.
    """
    media_type = parse_media_type(value)
    accepted = ACCEPTED_MEDIA_TYPES[kind]

    if media_type not in accepted:
        raise UnsupportedMediaTypeError(
            f"Media type '{media_type}' is not allowed for {kind.value} uploads. "
            f"Allowed types: {', '.join(sorted(accepted))}"
        )

    return media_type


def extension_for_media_type(media_type: str) -> str:
    """Return the storage extension (without dot) for an accepted media type."""
    try:
        return MEDIA_TYPE_EXTENSIONS[media_type]
    except KeyError as e:
        raise UnsupportedMediaTypeError(f"No extension known for media type '{media_type}'") from e


# =============================================================================
# FILE SIZE VALIDATION
# =============================================================================


def max_size_for_kind(kind: UploadKind, settings: Settings) -> int:
    """Return the byte budget configured for an upload kind."""
    if kind is UploadKind.THUMBNAIL:
        return settings.max_thumbnail_size_bytes
    return settings.max_video_size_bytes


def validate_file_size(size: int, kind: UploadKind, settings: Settings) -> None:
    """
    Enforce the size budget of an upload kind.

    Args:
        size: Size of the upload in bytes.
        kind: The upload kind.
        settings: Settings holding the budgets.

    Raises:
        FileTooLargeError: If ``size`` exceeds the budget for ``kind``.
    """
    max_size = max_size_for_kind(kind, settings)
    if size > max_size:
        raise FileTooLargeError(
            f"File size ({format_file_size(size)}) exceeds maximum allowed "
            f"for {kind.value} uploads ({format_file_size(max_size)})"
        )


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable string.

    Example:
        >>> format_file_size(1536)
        '1.50 KB'
        >>> format_file_size(1048576)
        '1.00 MB'
    """
    if size_bytes < 0:
        return "Invalid size"

    bytes_per_mb = BYTES_PER_KB * BYTES_PER_KB
    bytes_per_gb = bytes_per_mb * BYTES_PER_KB

    if size_bytes < BYTES_PER_KB:
        return f"{size_bytes} B"
    if size_bytes < bytes_per_mb:
        return f"{size_bytes / BYTES_PER_KB:.2f} KB"
    if size_bytes < bytes_per_gb:
        return f"{size_bytes / bytes_per_mb:.2f} MB"
    return f"{size_bytes / bytes_per_gb:.2f} GB"


__all__ = [
    "ACCEPTED_MEDIA_TYPES",
    "MEDIA_TYPE_EXTENSIONS",
    "UploadKind",
    "classify_media_type",
    "extension_for_media_type",
    "format_file_size",
    "max_size_for_kind",
    "parse_media_type",
    "validate_file_size",
]
