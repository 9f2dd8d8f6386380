"""Abstract base class for TTS engines."""

from abc import ABC, abstractmethod
from typing import Optional

from epub2m4b.models import TTSConfig, VoiceInfo


class TTSEngine(ABC):
    """Abstract base class that all TTS engines must implement."""

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the engine (load models, check availability).

        Raises:
            RuntimeError: If the engine cannot be used (missing deps, etc.).
        """
        ...

    @abstractmethod
    async def synthesize(self, text: str, config: TTSConfig) -> bytes:
        """Synthesize text to an in-memory audio stream.

        Args:
            text: Plain text to synthesize.
            config: Voice, speed, pitch settings.

        Returns:
            Encoded audio in the engine's ``output_format``.

        Raises:
            RuntimeError: If synthesis fails.
        """
        ...

    @abstractmethod
    async def list_voices(self, language: Optional[str] = None) -> list[VoiceInfo]:
        """Return available voices, optionally filtered by language."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable engine name."""
        ...

    @property
    @abstractmethod
    def output_format(self) -> str:
        """Audio format produced natively: 'wav' or 'mp3'."""
        ...

    def default_voice(self, language: str) -> str:
        """Voice used when none is configured."""
        return ""
