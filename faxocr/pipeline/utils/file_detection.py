"""
Centralized file type detection using magic bytes.

Used for upload validation and for recovering the content type of stored
page images, which are persisted as raw bytes without metadata.

Magic bytes reference:
- PDF:  %PDF (0x25504446)
- JPEG: 0xFFD8FF
- PNG:  0x89504E47 (89 P N G)
- TIFF: 0x49492A00 (little-endian) or 0x4D4D002A (big-endian)
- WEBP: RIFF....WEBP
"""

from typing import Final, Literal, Optional

FileType = Literal["pdf", "jpeg", "png", "tiff", "webp"]
MimeType = Literal[
    "application/pdf", "image/jpeg", "image/png", "image/tiff", "image/webp"
]

MAGIC_BYTES_MAP: Final[dict[bytes, tuple[FileType, MimeType]]] = {
    b"%PDF": ("pdf", "application/pdf"),
    b"\xff\xd8\xff": ("jpeg", "image/jpeg"),
    b"\x89PNG": ("png", "image/png"),
    b"\x49\x49\x2a\x00": ("tiff", "image/tiff"),
    b"\x4d\x4d\x00\x2a": ("tiff", "image/tiff"),
}

PAGINATED_CONTENT_TYPES: Final = frozenset({"application/pdf"})


def detect_file_type_from_bytes(
    header: bytes,
) -> tuple[FileType, MimeType] | None:
    """
    Detect file type from magic bytes header.

    Args:
        header: First 12+ bytes of file

    Returns:
        Tuple of (file_type, mime_type) or None if unrecognized

    Example:
        >>> detect_file_type_from_bytes(b'%PDF-1.4')
        ('pdf', 'application/pdf')
    """
    for signature, result in MAGIC_BYTES_MAP.items():
        if header.startswith(signature):
            return result
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return ("webp", "image/webp")
    return None


def detect_content_type(data: bytes, default: Optional[str] = None) -> Optional[str]:
    """Return the MIME type implied by ``data`` or ``default``."""
    result = detect_file_type_from_bytes(data[:12])
    return result[1] if result else default


def is_paginated(content_type: str) -> bool:
    return content_type in PAGINATED_CONTENT_TYPES
