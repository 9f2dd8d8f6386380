"""Converter - orchestrates the Book → TTS → M4B pipeline."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from epub2m4b import stages
from epub2m4b.audio.m4b_builder import FFmpegAudioConverter
from epub2m4b.models import Book, TTSConfig, VoiceInfo
from epub2m4b.progress import ProgressSink
from epub2m4b.tts.base import TTSEngine

logger = logging.getLogger(__name__)


class BookConverter:
    """Orchestrates the full conversion pipeline.

    One converter may run several conversions; ffmpeg and the TTS engine are
    prepared only once per instance.
    """

    def __init__(self, engine: TTSEngine, audio: Optional[FFmpegAudioConverter] = None):
        self.engine = engine
        self.audio = audio or FFmpegAudioConverter()
        self._ready = False
        self._ready_lock = asyncio.Lock()

    async def ensure_ready(self, on_progress: Optional[ProgressSink] = None) -> None:
        """Run the Installing stage unless it already succeeded on this converter."""
        async with self._ready_lock:
            if self._ready:
                return
            await stages.install(self.audio, self.engine, on_progress)
            self._ready = True

    async def get_voices(self, language: Optional[str] = None) -> list[VoiceInfo]:
        return await self.engine.list_voices(language)

    async def convert(
        self,
        config: TTSConfig,
        book: Book,
        output_path: Path,
        temp_dir: Path,
        on_progress: Optional[ProgressSink] = None,
    ) -> Path:
        """Full pipeline: chapters → TTS → AAC → M4B with chapters, tags and pictures.

        Args:
            config: Voice and delivery settings for the narration.
            book: Parsed book; never modified.
            output_path: Path for the output M4B file.
            temp_dir: Working directory owned by this run. Intermediate files
                are left there, also on failure.
            on_progress: Receives every ProgressUpdate of the run.

        Returns:
            ``output_path``.
        """
        if not book.chapters:
            raise ValueError(f"Il libro '{book.title}' non contiene capitoli")

        await self.ensure_ready(on_progress)

        output_path = Path(output_path)
        aac_dir = Path(temp_dir) / "aac"
        image_dir = Path(temp_dir) / "images"
        aac_dir.mkdir(parents=True, exist_ok=True)
        image_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Directory di lavoro: %s", temp_dir)

        chapter_audios = []
        for i, chapter in enumerate(book.chapters, start=1):
            logger.info("Capitolo %d/%d: %s", i, len(book.chapters), chapter.name)
            data = await stages.synthesize_chapter(self.engine, chapter, config, on_progress)
            aac_path = aac_dir / f"{stages.safe_filename(chapter.file_name)}.m4a"
            chapter_audios.append(
                await stages.encode_chapter(self.audio, chapter, data, aac_path, on_progress)
            )

        for image in book.images:
            await stages.save_image(image, image_dir, on_progress)

        logger.info("Assemblaggio M4B...")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        markers = await stages.merge_chapters(
            self.audio, chapter_audios, output_path, Path(temp_dir), on_progress,
        )
        for marker in markers:
            logger.debug("Capitolo %s: %d-%d ms", marker.title, marker.start_ms, marker.end_ms)
        await stages.tag_audiobook(self.audio, output_path, book, on_progress)

        logger.info("Audiobook creato: %s", output_path)
        return output_path
