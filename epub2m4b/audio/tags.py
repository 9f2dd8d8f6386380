"""MP4 tagging - title, authors, description and embedded pictures."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from mutagen.mp4 import MP4, MP4Cover

from epub2m4b.models import Book

logger = logging.getLogger(__name__)

# Number of leading bytes compared when looking for the cover among the images.
COVER_PREFIX_BYTES = 1024

# iTunes media kind for audiobooks.
MEDIA_KIND_AUDIOBOOK = 2


@dataclass(frozen=True)
class EmbeddedPicture:
    name: str
    content: bytes = field(repr=False)
    front_cover: bool = False


def detect_image_format(data: bytes) -> Optional[int]:
    """Return the MP4Cover format for JPEG/PNG data, None for anything else."""
    if data[:3] == b"\xff\xd8\xff":
        return MP4Cover.FORMAT_JPEG
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return MP4Cover.FORMAT_PNG
    return None


def collect_pictures(book: Book) -> list[EmbeddedPicture]:
    """Pictures to embed, the front cover (if any) first.

    The cover is the first image sharing its leading COVER_PREFIX_BYTES with
    ``book.cover_image``. A cover that matches no image is embedded on its own.
    Formats MP4 cannot hold are filtered later by :func:`write_tags`; when the
    cover itself is such a format no picture is embedded at all.
    """
    pictures = [EmbeddedPicture(image.file_name, image.content) for image in book.images]
    if not book.cover_image:
        return pictures

    prefix = book.cover_image[:COVER_PREFIX_BYTES]
    for i, picture in enumerate(pictures):
        if picture.content[:COVER_PREFIX_BYTES] == prefix:
            cover = EmbeddedPicture(picture.name, picture.content, front_cover=True)
            return [cover] + pictures[:i] + pictures[i + 1:]

    logger.debug("Copertina non trovata tra le immagini, aggiunta separatamente")
    return [EmbeddedPicture("cover", book.cover_image, front_cover=True)] + pictures


def write_tags(audio_path: Path, book: Book) -> None:
    """Write book metadata and pictures into an MP4/M4B file."""
    audio = MP4(str(audio_path))
    if audio.tags is None:
        audio.add_tags()

    audio["\xa9nam"] = [book.title]
    audio["sonm"] = [book.title]
    audio["\xa9alb"] = [book.title]
    if book.description:
        audio["\xa9cmt"] = [book.description]
    if book.author_list:
        audio["\xa9ART"] = list(book.author_list)
    audio["stik"] = [MEDIA_KIND_AUDIOBOOK]

    covers = []
    for picture in collect_pictures(book):
        image_format = detect_image_format(picture.content)
        if image_format is None and picture.front_cover:
            # covr[0] is shown as the cover
            logger.warning(
                "Formato copertina non supportato in M4B, nessuna immagine incorporata: %s",
                picture.name,
            )
            break
        if image_format is None:
            logger.warning("Formato immagine non supportato in M4B, salto: %s", picture.name)
            continue
        covers.append(MP4Cover(picture.content, imageformat=image_format))

    if covers:
        audio["covr"] = covers

    audio.save()
    logger.debug("Tag scritti: %s (%d immagini)", audio_path, len(covers))
