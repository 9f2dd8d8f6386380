"""M4B audiobook builder - encodes chapter audio and assembles it into a single M4B with chapter markers."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from epub2m4b.audio.audio_utils import check_ffmpeg, probe_duration_ms, run_process
from epub2m4b.audio.tags import write_tags
from epub2m4b.models import Book, ChapterAudio

logger = logging.getLogger(__name__)

# Gap between the end of a chapter marker and the start of the next one.
CHAPTER_GAP_MS = 1


@dataclass(frozen=True)
class ChapterMarker:
    title: str
    start_ms: int
    end_ms: int


class FFmpegAudioConverter:
    """Audio converter backed by the ffmpeg/ffprobe command-line tools."""

    def __init__(self, bitrate: str = "64k"):
        self.bitrate = bitrate
        self._ffmpeg: Optional[str] = None
        self._ffprobe: Optional[str] = None

    async def initialize(self) -> None:
        """Locate ffmpeg and ffprobe, downloading them on first use."""
        self._ffmpeg, self._ffprobe = await asyncio.to_thread(check_ffmpeg)
        logger.debug("ffmpeg: %s, ffprobe: %s", self._ffmpeg, self._ffprobe)

    @property
    def ffmpeg(self) -> str:
        if self._ffmpeg is None:
            raise RuntimeError("FFmpegAudioConverter non inizializzato: chiamare initialize()")
        return self._ffmpeg

    @property
    def ffprobe(self) -> str:
        if self._ffprobe is None:
            raise RuntimeError("FFmpegAudioConverter non inizializzato: chiamare initialize()")
        return self._ffprobe

    async def convert_to_codec(self, audio: bytes, output_path: Path) -> None:
        """Encode an in-memory audio stream (wav or mp3) to AAC in an MP4 container."""
        await run_process(
            [
                self.ffmpeg, "-y",
                "-i", "pipe:0",
                "-vn",
                "-c:a", "aac", "-b:a", self.bitrate,
                "-f", "mp4",
                str(output_path),
            ],
            input=audio,
        )

    async def concatenate_with_chapters(
        self,
        chapter_audios: list[ChapterAudio],
        output_path: Path,
        temp_dir: Path,
    ) -> list[ChapterMarker]:
        """Concatenate encoded chapters into ``output_path`` with one marker per chapter.

        Chapter durations are measured with ffprobe. The concat list and the
        ffmetadata file are written to ``temp_dir``.
        """
        measured = []
        for ch_audio in chapter_audios:
            duration = await probe_duration_ms(self.ffprobe, ch_audio.audio_path)
            measured.append(ChapterAudio(ch_audio.chapter, ch_audio.audio_path, duration))

        concat_path = temp_dir / "concat.txt"
        with open(concat_path, "w", encoding="utf-8") as f:
            for ch_audio in measured:
                safe_path = str(ch_audio.audio_path.resolve()).replace("'", "'\\''")
                f.write(f"file '{safe_path}'\n")

        markers = compute_chapter_markers(measured)
        meta_path = temp_dir / "chapters.txt"
        with open(meta_path, "w", encoding="utf-8") as f:
            f.write(_build_ffmetadata(markers))

        logger.info("Unione di %d capitoli in %s", len(measured), output_path.name)
        await run_process([
            self.ffmpeg, "-y",
            "-f", "concat", "-safe", "0", "-i", str(concat_path),
            "-f", "ffmetadata", "-i", str(meta_path),
            "-map", "0:a",
            "-map_metadata", "1",
            "-map_chapters", "1",
            "-c", "copy",
            "-f", "mp4",
            str(output_path),
        ])
        return markers

    async def embed_tags_and_images(self, output_path: Path, book: Book) -> None:
        await asyncio.to_thread(write_tags, output_path, book)


def compute_chapter_markers(chapter_audios: list[ChapterAudio]) -> list[ChapterMarker]:
    """Lay chapters end to end, CHAPTER_GAP_MS apart."""
    markers = []
    start = 0
    for ch_audio in chapter_audios:
        end = start + ch_audio.duration_ms
        markers.append(ChapterMarker(ch_audio.chapter.name, start, end))
        start = end + CHAPTER_GAP_MS
    return markers


def _build_ffmetadata(markers: list[ChapterMarker]) -> str:
    """Generate an ffmetadata string with chapter markers."""
    lines = [";FFMETADATA1", ""]

    for marker in markers:
        lines.append("[CHAPTER]")
        lines.append("TIMEBASE=1/1000")
        lines.append(f"START={marker.start_ms}")
        lines.append(f"END={marker.end_ms}")
        lines.append(f"title={_escape(marker.title)}")
        lines.append("")

    return "\n".join(lines)


def _escape(value: str) -> str:
    """Escape special characters for ffmetadata format."""
    # Must escape backslash first to avoid double-escaping
    value = value.replace("\\", "\\\\")
    for char in ("=", ";", "#", "\n"):
        value = value.replace(char, f"\\{char}")
    return value
