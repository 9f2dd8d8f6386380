"""Data models for the epub2m4b pipeline."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


class BookElement(ABC):
    """A named unit of book content whose size is used as a work-cost proxy."""

    file_name: str

    @property
    @abstractmethod
    def size(self) -> int:
        ...


@dataclass(frozen=True)
class BookChapter(BookElement):
    """A single chapter: display name plus plain text to narrate."""
    file_name: str
    name: str
    content: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class BookImage(BookElement):
    """An image embedded in the EPUB."""
    file_name: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class Book:
    """Read-only snapshot of a parsed book.

    The order of ``chapters`` and ``images`` is the processing order of the
    converter and the weighting order of the progress model.
    """
    file_name: str
    title: str
    description: str = ""
    author_list: tuple[str, ...] = ()
    cover_image: Optional[bytes] = field(default=None, repr=False)
    chapters: tuple[BookChapter, ...] = ()
    images: tuple[BookImage, ...] = ()


@dataclass(frozen=True)
class VoiceInfo:
    """A voice offered by a TTS engine."""
    name: str
    language: str
    gender: str = ""


@dataclass
class TTSConfig:
    """Configuration for TTS synthesis."""
    voice: str
    speed: float = 1.0
    pitch: Optional[str] = None
    language: str = "it"


@dataclass
class ChapterAudio:
    """An encoded chapter audio file with duration info."""
    chapter: BookChapter
    audio_path: Path
    duration_ms: int = 0
