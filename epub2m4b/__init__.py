"""epub2m4b - convert EPUB books into narrated M4B audiobooks."""

__version__ = "0.1.0"
