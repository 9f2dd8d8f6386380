"""Edge TTS engine - free online neural TTS via Microsoft Edge."""

import logging
import re
from typing import Optional

from epub2m4b.models import TTSConfig, VoiceInfo
from epub2m4b.tts.base import TTSEngine
from epub2m4b.tts import register_engine

logger = logging.getLogger(__name__)

# Default voices per language
DEFAULT_VOICES = {
    "it": "it-IT-IsabellaNeural",
    "en": "en-US-AriaNeural",
    "es": "es-ES-ElviraNeural",
    "fr": "fr-FR-DeniseNeural",
    "de": "de-DE-KatjaNeural",
}

# Max characters per TTS request to avoid Edge TTS limits
MAX_CHUNK_CHARS = 3000


@register_engine("edge")
class EdgeTTSEngine(TTSEngine):
    """TTS engine using Microsoft Edge's free online neural voices."""

    def initialize(self) -> None:
        import edge_tts  # noqa: F401

    async def synthesize(self, text: str, config: TTSConfig) -> bytes:
        import edge_tts

        voice = config.voice or self.default_voice(config.language)
        rate = self._speed_to_rate(config.speed)
        pitch = config.pitch or "+0Hz"

        # MP3 frames from consecutive requests can be joined byte-wise
        audio = bytearray()
        for chunk in self._split_text(text):
            communicate = edge_tts.Communicate(chunk, voice, rate=rate, pitch=pitch)
            async for message in communicate.stream():
                if message["type"] == "audio":
                    audio.extend(message["data"])

        if not audio:
            raise RuntimeError(f"Edge TTS non ha prodotto audio (voce: {voice})")
        return bytes(audio)

    async def list_voices(self, language: Optional[str] = None) -> list[VoiceInfo]:
        import edge_tts

        voices = await edge_tts.list_voices()
        result = []
        for v in voices:
            locale = v.get("Locale", "")
            if language and not locale.lower().startswith(language.lower()):
                continue
            result.append(VoiceInfo(
                name=v["ShortName"],
                language=locale,
                gender=v.get("Gender", ""),
            ))
        return sorted(result, key=lambda voice: voice.name)

    def default_voice(self, language: str) -> str:
        return DEFAULT_VOICES.get(language, DEFAULT_VOICES["it"])

    @property
    def name(self) -> str:
        return "Edge TTS"

    @property
    def output_format(self) -> str:
        return "mp3"

    @staticmethod
    def _speed_to_rate(speed: float) -> str:
        """Convert speed multiplier (e.g. 1.2) to Edge TTS rate string (e.g. '+20%')."""
        percent = round((speed - 1.0) * 100)
        if percent >= 0:
            return f"+{percent}%"
        return f"{percent}%"

    @staticmethod
    def _split_text(text: str) -> list[str]:
        """Split text into chunks at sentence boundaries, respecting MAX_CHUNK_CHARS."""
        if len(text) <= MAX_CHUNK_CHARS:
            return [text]

        # Split on sentence-ending punctuation followed by whitespace
        sentences = re.split(r"(?<=[.!?…])\s+", text)

        chunks = []
        current_chunk = ""

        for sentence in sentences:
            if len(current_chunk) + len(sentence) + 1 > MAX_CHUNK_CHARS and current_chunk:
                chunks.append(current_chunk.strip())
                current_chunk = sentence
            else:
                current_chunk = f"{current_chunk} {sentence}" if current_chunk else sentence

        if current_chunk.strip():
            chunks.append(current_chunk.strip())

        return chunks if chunks else [text]
