"""
Error taxonomy for the Tubely backend.

Every failure the upload pipeline can report is an ``AppError`` subclass that
carries the HTTP status and machine-readable error code the API returns.
Modules raise the specific subclass (``FileTooLargeError``,
``StorageWriteError``, ...) and the exception handler registered in
``app.main`` renders the response body:

    {"error": "<code>", "message": "<safe message>"}

Upstream failures (status 500) never expose their message to the caller; the
underlying cause is logged instead.
"""

from fastapi import status


class AppError(Exception):
    """Base exception for all errors surfaced through the API."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message()
        super().__init__(self.message)

    def default_message(self) -> str:
        return self.error_code.replace("_", " ").capitalize()

    @property
    def is_client_error(self) -> bool:
        return self.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR


# =============================================================================
# 4xx: Input validation
# =============================================================================


class InputValidationError(AppError):
    """Malformed input; the message is safe to return to the caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_input"


class InvalidVideoIDError(InputValidationError):
    error_code = "invalid_video_id"


class FormParseError(InputValidationError):
    error_code = "invalid_form"


class FieldMissingError(InputValidationError):
    error_code = "field_missing"


class InvalidMediaTypeError(InputValidationError):
    error_code = "invalid_media_type"


class UnsupportedMediaTypeError(InputValidationError):
    error_code = "unsupported_media_type"


class FileTooLargeError(InputValidationError):
    error_code = "file_too_large"


# =============================================================================
# 401: Authentication and authorization
# =============================================================================


class AuthenticationError(AppError):
    """The request does not carry a usable credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "unauthorized"


class MissingCredentialError(AuthenticationError):
    error_code = "missing_credential"


class InvalidCredentialError(AuthenticationError):
    error_code = "invalid_credential"


class AuthorizationError(AppError):
    """Valid principal acting on a record it does not own.

    Reported as 401 for every handler so clients see a single convention.
    """

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "forbidden"


class NotVideoOwnerError(AuthorizationError):
    error_code = "not_video_owner"


# =============================================================================
# 404: Missing records and assets
# =============================================================================


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class RecordNotFoundError(NotFoundError):
    error_code = "video_not_found"


class AssetNotFoundError(NotFoundError):
    error_code = "asset_not_found"


# =============================================================================
# 500: Upstream failures
# =============================================================================


class UpstreamError(AppError):
    """A collaborator (record store, object storage, ffmpeg) failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "upstream_failure"


class StorageWriteError(UpstreamError):
    error_code = "storage_write_failed"


class StorageReadError(UpstreamError):
    error_code = "storage_read_failed"


class PersistFailedError(UpstreamError):
    error_code = "persist_failed"


class VideoProcessingError(UpstreamError):
    error_code = "video_processing_failed"


__all__ = [
    "AppError",
    "AssetNotFoundError",
    "AuthenticationError",
    "AuthorizationError",
    "FieldMissingError",
    "FileTooLargeError",
    "FormParseError",
    "InputValidationError",
    "InvalidCredentialError",
    "InvalidMediaTypeError",
    "InvalidVideoIDError",
    "MissingCredentialError",
    "NotFoundError",
    "NotVideoOwnerError",
    "PersistFailedError",
    "RecordNotFoundError",
    "StorageReadError",
    "StorageWriteError",
    "UnsupportedMediaTypeError",
    "UpstreamError",
    "VideoProcessingError",
]
