"""
File utility functions for DICOM uploads.
"""
import os
import uuid
from typing import Optional
from urllib.parse import quote

from dicom_backend.core.dicom import ACCEPTED_CONTENT_TYPES, DICOM_EXTENSION

SAFE_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-")
# Leaves room for the uuid prefix within a 255-byte file name
MAX_SAFE_NAME_LENGTH = 200


def get_safe_filename(filename: str) -> str:
    """Get safe filename by removing/replacing unsafe characters."""
    # Drop any client-side directory part, either separator style
    basename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = ''.join(c if c in SAFE_CHARS else '_' for c in basename)
    if not safe.strip("."):
        return "upload"
    if len(safe) > MAX_SAFE_NAME_LENGTH:
        stem, ext = os.path.splitext(safe)
        ext = ext[:16]
        safe = stem[:MAX_SAFE_NAME_LENGTH - len(ext)] + ext
    return safe


def generate_storage_key(filename: str) -> str:
    """Blob key of the form ``{uuid}_{safe filename}``."""
    return f"{uuid.uuid4()}_{get_safe_filename(filename)}"


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-case media type with any parameters stripped."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def get_file_extension(filename: str) -> str:
    """Get file extension from filename."""
    return os.path.splitext(filename)[1].lower()


def is_dicom_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    """Accept a `.dcm` filename or a DICOM / generic binary content type.

    This only looks at what the client claims, never at the bytes.
    """
    if filename and get_file_extension(filename) == DICOM_EXTENSION:
        return True
    return normalize_content_type(content_type) in ACCEPTED_CONTENT_TYPES


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    """Build a Content-Disposition header value for a download name."""
    quoted = quote(filename)
    if quoted != filename:
        return f"{disposition}; filename*=utf-8''{quoted}"
    return f'{disposition}; filename="{filename}"'


def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format."""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    size = float(size_bytes)
    while size >= 1024 and i < len(size_names) - 1:
        size /= 1024
        i += 1
    return f"{round(size, 2)} {size_names[i]}"
