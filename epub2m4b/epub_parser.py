"""EPUB file parser - extracts chapters, images and metadata into a Book."""

import logging
import posixpath
from pathlib import Path
from typing import Optional

import ebooklib
from ebooklib import epub

from epub2m4b.html_converter import html_to_text
from epub2m4b.models import Book, BookChapter, BookImage

logger = logging.getLogger(__name__)

# Smaller "cover" images are usually placeholders or icons.
MIN_COVER_BYTES = 1000


class EpubParser:
    """Parse an EPUB file into a :class:`Book`."""

    def __init__(self, epub_path: str):
        self.epub_path = epub_path
        self._book: Optional[epub.EpubBook] = None

    def parse(self) -> Book:
        """Parse the EPUB and return the book with chapters in reading order.

        Raises:
            ValueError: If the EPUB contains no readable chapter.
        """
        self._book = epub.read_epub(self.epub_path)
        chapters = self._extract_chapters()
        images = self._extract_images()

        book = Book(
            file_name=Path(self.epub_path).stem,
            title=self._first_metadata("title") or Path(self.epub_path).stem,
            description=self._first_metadata("description") or "",
            author_list=tuple(value for value, _ in self._book.get_metadata("DC", "creator")),
            cover_image=self._extract_cover(),
            chapters=tuple(chapters),
            images=tuple(images),
        )
        logger.info(
            "Libro: '%s' di %s - %d capitoli, %d immagini",
            book.title, ", ".join(book.author_list) or "Sconosciuto",
            len(book.chapters), len(book.images),
        )
        return book

    def _first_metadata(self, name: str) -> Optional[str]:
        values = self._book.get_metadata("DC", name)
        return values[0][0] if values else None

    def _extract_cover(self) -> Optional[bytes]:
        """Extract cover image from EPUB, trying multiple strategies."""
        # Strategy 1: ITEM_COVER type
        for item in self._book.get_items_of_type(ebooklib.ITEM_COVER):
            content = item.get_content()
            if content and len(content) > MIN_COVER_BYTES:
                logger.debug("Copertina trovata via ITEM_COVER")
                return content

        # Strategy 2: metadata cover reference (most EPUBs use this)
        cover_meta = self._book.get_metadata("OPF", "cover")
        if cover_meta:
            meta_val, meta_attrs = cover_meta[0]
            cover_id = meta_attrs.get("content") or meta_val
            item = self._book.get_item_with_id(cover_id) if cover_id else None
            if item:
                content = item.get_content()
                if content and len(content) > MIN_COVER_BYTES:
                    logger.debug("Copertina trovata via OPF metadata: %s", cover_id)
                    return content

        # Strategy 3: image items with 'cover' in the name
        for item in self._book.get_items_of_type(ebooklib.ITEM_IMAGE):
            name = (item.get_name() or "").lower()
            item_id = (item.id or "").lower()
            if "cover" in name or "cover" in item_id:
                content = item.get_content()
                if content and len(content) > MIN_COVER_BYTES:
                    logger.debug("Copertina trovata via nome file: %s", item.get_name())
                    return content

        logger.debug("Nessuna copertina trovata nell'EPUB")
        return None

    def _extract_chapters(self) -> list[BookChapter]:
        """Extract chapters in spine (reading) order, skipping documents without text."""
        chapters = []

        for item_id, _ in self._book.spine:
            item = self._book.get_item_with_id(item_id)
            if item is None or item.get_type() != ebooklib.ITEM_DOCUMENT:
                continue
            if isinstance(item, epub.EpubNav):
                continue

            title, text = html_to_text(item.get_content())
            if not text:
                logger.debug("Saltato elemento vuoto: %s", item_id)
                continue

            title = title or posixpath.splitext(posixpath.basename(item.get_name()))[0]
            chapters.append(BookChapter(
                file_name=f"{len(chapters) + 1:04d} {title}",
                name=title,
                content=text,
            ))

        if not chapters:
            raise ValueError(f"Nessun capitolo trovato in {self.epub_path}")

        return chapters

    def _extract_images(self) -> list[BookImage]:
        images = []
        for item in self._book.get_items():
            if item.get_type() not in (ebooklib.ITEM_IMAGE, ebooklib.ITEM_COVER):
                continue
            images.append(BookImage(
                file_name=f"{len(images) + 1:04d} {posixpath.basename(item.get_name())}",
                content=item.get_content(),
            ))
        return images
