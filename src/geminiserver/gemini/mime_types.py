"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to the MIME type sent as the meta of a "20"
response.

The native document format of Gemini is text/gemini ("gemtext"), with
the extensions .gmi and .gemini. Files whose extension we do not know
are served as text/gemini too, so a capsule made of extension-less
pages still renders in every client.

    ┌────────────────────────────────────────────────────────────────────┐
    │  .gmi / .gemini    → text/gemini                                  │
    │  .txt              → text/plain                                    │
    │  .md               → text/markdown                                 │
    │  .png .jpg .gif    → image/*                                       │
    │  anything else     → text/gemini                                   │
    └────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from pathlib import Path
from typing import Optional


GEMINI_MIME_TYPE = "text/gemini"

MIME_TYPES = {
    # Gemtext
    ".gmi": GEMINI_MIME_TYPE,
    ".gemini": GEMINI_MIME_TYPE,

    # Other text
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".html": "text/html",
    ".htm": "text/html",
    ".xml": "application/xml",
    ".json": "application/json",
    ".atom": "application/atom+xml",
    ".rss": "application/rss+xml",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",

    # Audio / video
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".opus": "audio/opus",
    ".flac": "audio/flac",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # Documents and archives
    ".pdf": "application/pdf",
    ".epub": "application/epub+zip",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
}

DEFAULT_MIME_TYPE = GEMINI_MIME_TYPE


def get_mime_type(path: str | Path, default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Examples:
        >>> get_mime_type("index.gmi")
        'text/gemini'

        >>> get_mime_type("/capsule/photo.PNG")
        'image/png'

        >>> get_mime_type("README")
        'text/gemini'
    """
    if isinstance(path, str):
        path = Path(path)

    extension = path.suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)

