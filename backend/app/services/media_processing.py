"""
Video preprocessing used by the video upload pipeline.

The pipeline depends on the ``VideoProcessor`` contract only:

- ``normalize(input_path)`` remuxes a file for fast start (the ``moov`` atom is
  moved to the front so playback can begin before the download completes) and
  returns the path of the new file
- ``inspect(path)`` returns the pixel dimensions of the first video stream

``FFmpegVideoProcessor`` implements it with the ffmpeg and ffprobe binaries.
Tests inject a fake through the FastAPI dependency.
"""

import asyncio
import json
import logging

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import aiofiles.os

from app.core.errors import VideoProcessingError


logger = logging.getLogger(__name__)

PROCESSING_SUFFIX = ".processing"

# Maximum characters of tool stderr copied into logs
STDERR_LOG_LIMIT = 2000


@dataclass(frozen=True)
class VideoDimensions:
    width: int
    height: int


class VideoProcessor(ABC):
    """Capability the video pipeline uses to prepare uploads."""

    @abstractmethod
    async def normalize(self, input_path: Path) -> Path:
        """Write a fast-start copy of ``input_path`` and return its path."""

    @abstractmethod
    async def inspect(self, path: Path) -> VideoDimensions:
        """Return the width and height of the video stream in ``path``."""


class FFmpegVideoProcessor(VideoProcessor):
    """
    VideoProcessor backed by ffmpeg/ffprobe subprocesses.

    Non-zero exits, missing executables and unparseable ffprobe output raise
    ``VideoProcessingError``; tool stderr is logged, never returned to clients.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe") -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    async def _run(self, *args: str) -> bytes:
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.exception("Failed to start %s", args[0])
            raise VideoProcessingError(f"Could not start {Path(args[0]).name}") from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            logger.error(
                "%s exited with status %s: %s",
                Path(args[0]).name,
                process.returncode,
                stderr.decode("utf-8", errors="replace")[:STDERR_LOG_LIMIT],
            )
            raise VideoProcessingError(f"{Path(args[0]).name} failed")

        return stdout

    async def normalize(self, input_path: Path) -> Path:
        output_path = input_path.with_name(input_path.name + PROCESSING_SUFFIX)

        try:
            await self._run(
                self.ffmpeg_path,
                "-y",
                "-i",
                str(input_path),
                "-c",
                "copy",
                "-movflags",
                "faststart",
                "-f",
                "mp4",
                str(output_path),
            )
        except BaseException:
            try:
                await aiofiles.os.remove(output_path)
            except FileNotFoundError:
                pass
            raise

        logger.debug("Remuxed %s for fast start", input_path)
        return output_path

    async def inspect(self, path: Path) -> VideoDimensions:
        stdout = await self._run(
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            str(path),
        )
        return parse_ffprobe_dimensions(stdout)


def parse_ffprobe_dimensions(output: bytes | str) -> VideoDimensions:
    """
    Extract the dimensions of the first video stream from ffprobe JSON.

    Raises:
        VideoProcessingError: If the output is not JSON or lists no video
            stream with integer dimensions.
    """
    try:
        probe = json.loads(output)
    except ValueError as e:
        raise VideoProcessingError("Could not parse ffprobe output") from e

    streams = probe.get("streams") if isinstance(probe, dict) else None
    for stream in streams or []:
        if stream.get("codec_type", "video") != "video":
            continue
        width, height = stream.get("width"), stream.get("height")
        if isinstance(width, int) and isinstance(height, int):
            return VideoDimensions(width=width, height=height)

    raise VideoProcessingError("No video stream found in upload")


__all__ = [
    "FFmpegVideoProcessor",
    "VideoDimensions",
    "VideoProcessor",
    "parse_ffprobe_dimensions",
]
