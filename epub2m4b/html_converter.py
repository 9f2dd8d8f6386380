"""HTML to plain text conversion for narration."""

import re
from typing import Optional, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

# Blocks that hold running text; an <img> inside one is read in place.
LEAF_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "figcaption"]

# Every element that starts a new line when read, as in rendered innerText.
BLOCK_TAGS = frozenset(LEAF_TAGS + [
    "address", "article", "body", "br", "dd", "div", "dl", "dt", "figure", "footer",
    "header", "hr", "main", "ol", "pre", "section", "table", "td", "th", "tr", "ul",
])

IMAGE_PREFIX = "book image: "


def html_to_text(html_content: Union[str, bytes]) -> tuple[Optional[str], str]:
    """Convert an XHTML document into (title, plain text suitable for TTS).

    All text in the body is read, one line per block element, whatever tags
    the book uses for its paragraphs.
    """
    soup = BeautifulSoup(html_content, "lxml")

    for tag in soup(["script", "style", "nav", "aside"]):
        tag.decompose()

    title = _extract_title(soup)
    _replace_images(soup)

    text = "\n".join(_block_lines(soup.body or soup))
    return title, clean_for_tts(text).strip()


def _block_lines(root: Tag) -> list[str]:
    """Text of ``root`` split at block boundaries, whitespace normalized."""
    lines: list[str] = []
    current: list[str] = []

    def flush() -> None:
        line = " ".join("".join(current).split())
        if line:
            lines.append(line)
        current.clear()

    def walk(node: Tag) -> None:
        for child in node.children:
            if isinstance(child, Tag):
                if child.name in BLOCK_TAGS:
                    flush()
                    walk(child)
                    flush()
                else:
                    walk(child)
            elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
                current.append(str(child))

    walk(root)
    flush()
    return lines


def _extract_title(soup: BeautifulSoup) -> Optional[str]:
    """Try to extract a chapter title from headings, then <title>."""
    for tag_name in ["h1", "h2", "h3", "title"]:
        tag = soup.find(tag_name)
        if tag:
            title = tag.get_text(strip=True)
            if title:
                return title
    return None


def _replace_images(soup: BeautifulSoup) -> None:
    """Replace every <img> with a spoken reference to its alt text."""
    for img in soup.find_all("img"):
        alt = (img.get("alt") or "").strip()
        if not alt:
            img.decompose()
            continue
        spoken = f"{IMAGE_PREFIX}{alt}"
        if img.find_parent(LEAF_TAGS):
            img.replace_with(f" {spoken} ")
        else:
            paragraph = soup.new_tag("p")
            paragraph.string = spoken
            img.replace_with(paragraph)


def clean_for_tts(text: str) -> str:
    """Clean extracted text for optimal TTS pronunciation."""

    # Normalize Unicode punctuation to ASCII equivalents
    replacements = {
        "\u2018": "'",
        "\u2019": "'",
        "\u201C": '"',
        "\u201D": '"',
        "\u2013": " ",   # TTS may read dashes aloud
        "\u2014": " ",
        "\u2026": "...",
        "\u00A0": " ",
    }
    for old, new in replacements.items():
        text = text.replace(old, new)

    text = text.replace("...", "\x00ELLIPSIS\x00")

    # Isolated periods are read as "punto"
    text = re.sub(r"(?:^|(?<=\s))\.(?=\s|$)", "", text)

    # Lines made only of punctuation
    text = re.sub(r"^\s*[.\-,;:]+\s*$", "", text, flags=re.MULTILINE)

    # Space after sentence-ending punctuation followed by a letter
    text = re.sub(r"([.!?])([A-ZÀ-Úa-zà-ú])", r"\1 \2", text)

    # Dialogue closed by a dash before the final punctuation
    text = re.sub(r"-\s*\.\s*", ". ", text)
    text = re.sub(r"-\s*,\s*", ", ", text)

    text = re.sub(r"^\s*\.+\s*", "", text, flags=re.MULTILINE)

    text = text.replace("\x00ELLIPSIS\x00", "...")

    text = re.sub(r" {2,}", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)

    return text
