"""
Tubely S3-Compatible Storage Client

This module wraps boto3 for the object-storage backend of the upload pipeline.
The same client talks to AWS S3 (no endpoint URL) or MinIO (endpoint URL set),
using s3v4 signatures and path-style addressing.

- generate_presigned_url: time-limited GET URL for a bucket/key pair
- StorageClient: object upload, download, delete and existence checks plus
  presigned download URLs within validated expiry bounds
- get_storage_client: process-wide StorageClient singleton

boto3 calls are blocking; async callers run them with ``asyncio.to_thread``.
"""

import io
import logging

from typing import Any, BinaryIO

import boto3

from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings, get_settings


# Configure module-level constants to avoid magic numbers
MIN_PRESIGNED_EXPIRATION_SECONDS = 60
MAX_DOWNLOAD_EXPIRATION_SECONDS = 86400

NOT_FOUND_ERROR_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

# Configure module-level logger
logger = logging.getLogger(__name__)

# Using a dict container allows modification without global statement
_singleton_container: dict[str, "StorageClient"] = {}


def generate_presigned_url(s3_client: Any, bucket: str, key: str, expires_in: int) -> str:
    """
    Generate a presigned GET URL for an object.

    The URL depends only on the arguments and the signing credentials held by
    ``s3_client``; no request is made to the storage provider. Signing errors
    propagate unchanged.

    Args:
        s3_client: A boto3 S3 client.
        bucket: Bucket holding the object.
        key: Object key.
        expires_in: Lifetime of the URL in seconds.

    Returns:
        str: The presigned URL.
    """
    return s3_client.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=expires_in,
    )


def is_not_found_error(error: ClientError) -> bool:
    """Return True when a ClientError reports a missing object."""
    return error.response.get("Error", {}).get("Code", "") in NOT_FOUND_ERROR_CODES


class StorageClient:
    """
    Cloud-agnostic S3-compatible storage client supporting both MinIO and AWS S3.

    Attributes:
        settings: Application settings containing S3 configuration
        s3_client: Initialized boto3 S3 client
        bucket_name: Target bucket for all operations

    Example usage:
        ```python
        storage = get_storage_client()
        storage.put_object("landscape/abc.mp4", video_file, "video/mp4")
        url = storage.generate_presigned_download_url("landscape/abc.mp4")
        ```
    """

    def __init__(self, settings: Settings | None = None, s3_client: Any | None = None) -> None:
        """
        Initialize the S3 storage client.

        Args:
            settings: Optional Settings instance. Defaults to get_settings().
            s3_client: Optional pre-built boto3 client (tests inject stubs here).
        """
        self.settings = settings or get_settings()
        self.bucket_name = self.settings.s3_bucket_name

        if s3_client is not None:
            self.s3_client = s3_client
            return

        client_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},  # Use path-style for MinIO compatibility
            retries={"max_attempts": 3, "mode": "standard"},
        )

        # When endpoint_url is None, boto3 defaults to AWS S3
        self.s3_client = boto3.client(
            "s3",
            endpoint_url=self.settings.s3_endpoint_url,
            aws_access_key_id=self.settings.s3_access_key_id,
            aws_secret_access_key=self.settings.s3_secret_access_key,
            region_name=self.settings.s3_region,
            config=client_config,
        )

        logger.info(
            "S3 storage client initialized",
            extra={
                "bucket": self.bucket_name,
                "region": self.settings.s3_region,
                "endpoint": self.settings.s3_endpoint_url or "AWS S3 (default)",
            },
        )

    def put_object(self, key: str, data: bytes | BinaryIO, content_type: str) -> None:
        """
        Upload bytes or a binary file object to ``bucket/key``.

        File objects are streamed by boto3's managed transfer, which switches
        to multipart uploads for large videos.

        Raises:
            ClientError, BotoCoreError: If the upload fails.
        """
        fileobj = io.BytesIO(data) if isinstance(data, bytes | bytearray) else data

        try:
            self.s3_client.upload_fileobj(
                Fileobj=fileobj,
                Bucket=self.bucket_name,
                Key=key,
                ExtraArgs={"ContentType": content_type},
            )
        except (ClientError, BotoCoreError):
            logger.exception("Failed to upload object to S3", extra={"key": key})
            raise

        logger.info("Uploaded object to S3", extra={"key": key, "content_type": content_type})

    def get_object(self, key: str) -> tuple[bytes, str]:
        """
        Download an object.

        Returns:
            tuple[bytes, str]: Object body and its stored content type.

        Raises:
            ClientError, BotoCoreError: If the download fails.
        """
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            body = response["Body"].read()
        except ClientError as e:
            if not is_not_found_error(e):
                logger.exception("Failed to download object from S3", extra={"key": key})
            raise
        except BotoCoreError:
            logger.exception("Failed to download object from S3", extra={"key": key})
            raise

        return body, response.get("ContentType", "application/octet-stream")

    def delete_object(self, key: str) -> None:
        """
        Delete an object. Deleting a missing key is not an error.

        Raises:
            ClientError, BotoCoreError: If the delete fails.
        """
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError):
            logger.exception("Failed to delete object from S3", extra={"key": key})
            raise

        logger.info("Deleted object from S3", extra={"key": key})

    def file_exists(self, key: str) -> bool:
        """Check object existence with a HEAD request."""
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if is_not_found_error(e):
                return False
            logger.exception("Failed to check object existence in S3", extra={"key": key})
            raise
        return True

    def generate_presigned_download_url(
        self,
        key: str,
        expires_in: int | None = None,
        bucket: str | None = None,
    ) -> str:
        """
        Generate a presigned GET URL for secure download.

        Args:
            key: Object key.
            expires_in: Lifetime in seconds (60 to 86400). Defaults to
                ``presigned_url_expiration_seconds``.
            bucket: Bucket override; defaults to the configured bucket.

        Raises:
            ValueError: If ``expires_in`` is outside the valid range.
            ClientError, BotoCoreError: If signing fails.
        """
        expiration = expires_in if expires_in is not None else self.settings.presigned_url_expiration_seconds

        if not MIN_PRESIGNED_EXPIRATION_SECONDS <= expiration <= MAX_DOWNLOAD_EXPIRATION_SECONDS:
            raise ValueError(
                f"expires_in must be between {MIN_PRESIGNED_EXPIRATION_SECONDS} and "
                f"{MAX_DOWNLOAD_EXPIRATION_SECONDS} seconds, got {expiration}"
            )

        url = generate_presigned_url(self.s3_client, bucket or self.bucket_name, key, expiration)
        logger.debug("Generated presigned download URL", extra={"key": key, "expires_in": expiration})
        return url

    def public_object_url(self, key: str) -> str:
        """
        Build the unauthenticated URL of an object.

        Uses ``s3_public_base_url`` (for example a CDN distribution) when set,
        otherwise the virtual-hosted AWS URL.
        """
        if self.settings.s3_public_base_url:
            return f"{self.settings.s3_public_base_url}/{key}"
        return f"https://{self.bucket_name}.s3.{self.settings.s3_region}.amazonaws.com/{key}"


def get_storage_client(settings: Settings | None = None) -> StorageClient:
    """
    Get the singleton StorageClient instance, creating it on first use.

    boto3 clients are thread-safe, so one client serves every worker thread.
    """
    if "instance" not in _singleton_container:
        _singleton_container["instance"] = StorageClient(settings)
        logger.info("Created new StorageClient singleton instance")

    return _singleton_container["instance"]


__all__ = [
    "MAX_DOWNLOAD_EXPIRATION_SECONDS",
    "MIN_PRESIGNED_EXPIRATION_SECONDS",
    "StorageClient",
    "generate_presigned_url",
    "get_storage_client",
    "is_not_found_error",
]
