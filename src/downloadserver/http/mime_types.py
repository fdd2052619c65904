"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to MIME types so downloads can announce a
Content-Type.

=============================================================================
KNOWN VS UNKNOWN TYPES
=============================================================================

A static file server usually falls back to application/octet-stream.
A download server does not: when the extension is unknown the response
simply carries no Content-Type header and the client decides.

    ┌────────────────────────────────────────────────────────────────────┐
    │  report.pdf    → application/pdf                                   │
    │  notes.txt     → text/plain; charset=utf-8                         │
    │  blob.xyz      → None   (no Content-Type header at all)            │
    └────────────────────────────────────────────────────────────────────┘

Text types carry a charset parameter. Binary types never do.

=============================================================================
INTERVIEW INSIGHT
=============================================================================

Q: "Why not always send application/octet-stream for unknown files?"
A: "It is a claim about the content. Omitting the header is honest:
   RFC 7231 lets the recipient sniff or assume octet-stream itself."

=============================================================================
"""

from pathlib import Path
from typing import Optional


MIME_TYPES = {
    # -------------------------------------------------------------------------
    # TEXT TYPES
    # -------------------------------------------------------------------------
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",

    # -------------------------------------------------------------------------
    # IMAGE TYPES
    # -------------------------------------------------------------------------
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".bmp": "image/bmp",

    # -------------------------------------------------------------------------
    # AUDIO / VIDEO TYPES
    # -------------------------------------------------------------------------
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",

    # -------------------------------------------------------------------------
    # DOCUMENT TYPES
    # -------------------------------------------------------------------------
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",

    # -------------------------------------------------------------------------
    # ARCHIVE TYPES
    # -------------------------------------------------------------------------
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".7z": "application/x-7z-compressed",
    ".iso": "application/x-iso9660-image",
}

DEFAULT_CHARSET = "utf-8"

TEXT_LIKE_TYPES = {"application/json", "application/xml", "image/svg+xml"}


def guess_mime_type(path: str | Path) -> Optional[str]:
    """
    Get the MIME type for a file based on its extension.

    Returns None when the extension is not in the table.

    Examples:
        >>> guess_mime_type("report.PDF")
        'application/pdf'

        >>> guess_mime_type("blob.xyz") is None
        True
    """
    if isinstance(path, str):
        path = Path(path)

    return MIME_TYPES.get(path.suffix.lower())


def get_content_type(path: str | Path, charset: str = DEFAULT_CHARSET) -> Optional[str]:
    """
    Get the full Content-Type header value for a file, or None.

    Examples:
        >>> get_content_type("notes.txt")
        'text/plain; charset=utf-8'

        >>> get_content_type("image.png")
        'image/png'
    """
    mime_type = guess_mime_type(path)
    if mime_type is None:
        return None

    # Text content is served with a charset parameter.
    if mime_type.startswith("text/") or mime_type in TEXT_LIKE_TYPES:
        return f"{mime_type}; charset={charset}"

    return mime_type
