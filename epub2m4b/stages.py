"""Pipeline stage executors.

Each function runs one unit of work against an external collaborator inside a
progress scope. Collaborators never report progress themselves.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

from epub2m4b.audio.m4b_builder import ChapterMarker, FFmpegAudioConverter
from epub2m4b.models import Book, BookChapter, BookImage, ChapterAudio, TTSConfig
from epub2m4b.progress import INSTALLING_SCOPE, ProgressSink, Stage, progress_scope
from epub2m4b.tts.base import TTSEngine

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

# Most filesystems cap a name at 255 bytes; leave room for the extension.
MAX_FILENAME_BYTES = 120


def safe_filename(name: str) -> str:
    """Make ``name`` usable as a file name on common filesystems.

    Long names are cut to MAX_FILENAME_BYTES of UTF-8 on a character boundary.
    """
    cleaned = _UNSAFE_CHARS.sub("_", name).strip()
    cleaned = cleaned.encode("utf-8")[:MAX_FILENAME_BYTES].decode("utf-8", errors="ignore")
    cleaned = cleaned.rstrip().rstrip(".")
    return cleaned or "_"



async def install(
    audio: FFmpegAudioConverter,
    engine: TTSEngine,
    on_progress: Optional[ProgressSink],
) -> None:
    with progress_scope(on_progress, INSTALLING_SCOPE, Stage.INSTALLING):
        logger.info("Preparazione di ffmpeg e del motore TTS (%s)...", engine.name)
        await audio.initialize()
        await asyncio.to_thread(engine.initialize)


async def synthesize_chapter(
    engine: TTSEngine,
    chapter: BookChapter,
    config: TTSConfig,
    on_progress: Optional[ProgressSink],
) -> bytes:
    with progress_scope(on_progress, chapter.file_name, Stage.CONVERT_TEXT_TO_WAV):
        logger.info("Sintesi capitolo: %s", chapter.name)
        return await engine.synthesize(chapter.content, config)


async def encode_chapter(
    audio: FFmpegAudioConverter,
    chapter: BookChapter,
    data: bytes,
    output_path: Path,
    on_progress: Optional[ProgressSink],
) -> ChapterAudio:
    with progress_scope(on_progress, chapter.file_name, Stage.CONVERT_WAV_TO_AAC):
        logger.debug("Codifica %s -> %s", chapter.file_name, output_path.name)
        await audio.convert_to_codec(data, output_path)
        return ChapterAudio(chapter=chapter, audio_path=output_path)


async def save_image(
    image: BookImage,
    image_dir: Path,
    on_progress: Optional[ProgressSink],
) -> Path:
    with progress_scope(on_progress, image.file_name, Stage.SAVING_IMAGE):
        path = image_dir / safe_filename(image.file_name)
        logger.debug("Salvataggio immagine %s (%d bytes)", path.name, image.size)
        await asyncio.to_thread(path.write_bytes, image.content)
        return path


async def merge_chapters(
    audio: FFmpegAudioConverter,
    chapter_audios: list[ChapterAudio],
    output_path: Path,
    temp_dir: Path,
    on_progress: Optional[ProgressSink],
) -> list[ChapterMarker]:
    with progress_scope(on_progress, output_path.name, Stage.MERGING_INTO_M4B):
        return await audio.concatenate_with_chapters(chapter_audios, output_path, temp_dir)


async def tag_audiobook(
    audio: FFmpegAudioConverter,
    output_path: Path,
    book: Book,
    on_progress: Optional[ProgressSink],
) -> None:
    with progress_scope(on_progress, output_path.name, Stage.UPDATING_M4B_METADATA):
        logger.info("Aggiunta metadati e copertina...")
        await audio.embed_tags_and_images(output_path, book)
