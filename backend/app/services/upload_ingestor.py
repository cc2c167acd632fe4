"""
Multipart ingestion for the upload endpoints.

Reads one file field out of a ``multipart/form-data`` request and enforces the
byte budget of the upload kind at two points:

1. the request ``Content-Length``, before the body is parsed
2. while copying the part into memory or into a temporary file

Thumbnails are small enough to buffer in memory (``read_bounded``). Videos are
copied into a named temporary file (``spooled_temp_file``) so ffmpeg can work
on a path; the file is removed on every exit path, including cancellation
when the client disconnects.
"""

import logging
import os
import tempfile

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os

from fastapi import Request
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from app.core.errors import FieldMissingError, FileTooLargeError, FormParseError
from app.utils.file_validator import format_file_size


logger = logging.getLogger(__name__)

MULTIPART_CONTENT_TYPE = "multipart/form-data"

# Allowance for boundaries and part headers on top of the file budget
FORM_OVERHEAD_BYTES = 64 * 1024

COPY_CHUNK_SIZE = 1024 * 1024

TEMP_FILE_PREFIX = "tubely-upload-"


@dataclass
class UploadedPart:
    """A file part taken from a parsed multipart form."""

    field_name: str
    filename: str | None
    content_type: str | None
    upload: UploadFile
    size: int

    async def read(self, size: int = -1) -> bytes:
        return await self.upload.read(size)


def _too_large(size: int, max_bytes: int) -> FileTooLargeError:
    return FileTooLargeError(
        f"Upload of {format_file_size(size)} exceeds the limit of {format_file_size(max_bytes)}"
    )


def check_content_length(request: Request, max_bytes: int) -> None:
    """
    Reject a request whose declared body is larger than the budget allows.

    A missing or unparseable header is left to the later checks.
    """
    content_length = request.headers.get("content-length")
    if content_length is None:
        return

    try:
        declared = int(content_length)
    except ValueError:
        return

    if declared > max_bytes + FORM_OVERHEAD_BYTES:
        raise _too_large(declared, max_bytes)


async def _measure(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    await upload.seek(0)
    size = upload.file.seek(0, os.SEEK_END)
    await upload.seek(0)
    return size


@asynccontextmanager
async def read_upload_part(
    request: Request, field_name: str, max_bytes: int
) -> AsyncIterator[UploadedPart]:
    """
    Parse the request form and yield the file part named ``field_name``.

    The form (and its spooled part files) is closed when the context exits.

    Raises:
        FileTooLargeError: Declared body size beyond ``max_bytes``.
        FormParseError: Not a multipart body, or the parser rejected it.
        FieldMissingError: ``field_name`` is absent or not a file.
    """
    check_content_length(request, max_bytes)

    content_type = request.headers.get("content-type", "")
    if not content_type.lower().startswith(MULTIPART_CONTENT_TYPE):
        raise FormParseError("Request body must be multipart/form-data")

    try:
        form = await request.form()
    except (MultiPartException, StarletteHTTPException) as e:
        message = getattr(e, "message", None) or getattr(e, "detail", None) or "Malformed form"
        raise FormParseError(f"Unable to parse multipart form: {message}") from e

    try:
        upload = form.get(field_name)
        if not isinstance(upload, UploadFile):
            raise FieldMissingError(f"Form field '{field_name}' with a file is required")

        yield UploadedPart(
            field_name=field_name,
            filename=upload.filename,
            content_type=upload.content_type,
            upload=upload,
            size=await _measure(upload),
        )
    finally:
        await form.close()


async def read_bounded(part: UploadedPart, max_bytes: int) -> bytes:
    """
    Read a part fully into memory, failing once it exceeds ``max_bytes``.

    Raises:
        FileTooLargeError: The part holds more than ``max_bytes`` bytes.
    """
    chunks: list[bytes] = []
    total = 0

    while chunk := await part.read(COPY_CHUNK_SIZE):
        total += len(chunk)
        if total > max_bytes:
            raise _too_large(total, max_bytes)
        chunks.append(chunk)

    return b"".join(chunks)


async def remove_file(path: Path) -> None:
    """Remove a file, ignoring one that is already gone."""
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Failed to remove temporary file %s", path, exc_info=True)
    else:
        logger.debug("Removed temporary file %s", path)


@asynccontextmanager
async def spooled_temp_file(
    part: UploadedPart,
    max_bytes: int,
    suffix: str = ".mp4",
    directory: str | None = None,
) -> AsyncIterator[Path]:
    """
    Copy a part into a named temporary file and yield its path.

    The budget is enforced while copying. The file is removed when the context
    exits, whether by success, error or cancellation.

    Raises:
        FileTooLargeError: The part holds more than ``max_bytes`` bytes.
    """
    fd, name = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX, suffix=suffix, dir=directory)
    os.close(fd)
    path = Path(name)

    try:
        total = 0
        async with aiofiles.open(path, "wb") as out:
            while chunk := await part.read(COPY_CHUNK_SIZE):
                total += len(chunk)
                if total > max_bytes:
                    raise _too_large(total, max_bytes)
                await out.write(chunk)

        logger.debug("Spooled %s to %s", format_file_size(total), path)
        yield path
    finally:
        await remove_file(path)


__all__ = [
    "UploadedPart",
    "check_content_length",
    "read_bounded",
    "read_upload_part",
    "remove_file",
    "spooled_temp_file",
]
