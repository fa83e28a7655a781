from __future__ import annotations

from collections.abc import Iterable

from .errors import InvalidFile
from .settings import DEFAULT_ALLOWED_EXTENSIONS, DEFAULT_MAX_UPLOAD_BYTES


def file_extension(filename: str | None) -> str:
    if not filename:
        return ""
    idx = filename.rfind(".")
    return filename[idx + 1 :] if idx > 0 else ""


def validate_upload(
    content: bytes,
    filename: str | None,
    size: int | None = None,
    *,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    allowed_extensions: Iterable[str] = DEFAULT_ALLOWED_EXTENSIONS,
) -> str:
    """Check an upload before any work is done and return its lower-cased extension.

    Only the payload size and the declared filename are inspected. Whether the
    bytes actually decode as an image is left to the recognition stage.
    """
    declared = len(content) if size is None else size
    if not content or declared <= 0:
        raise InvalidFile("empty", "File is empty")

    if declared > max_bytes:
        raise InvalidFile(
            "size",
            f"File too large. Maximum size: {max_bytes // 1024 // 1024}MB",
        )

    allowed = [e.lower() for e in allowed_extensions]
    ext = file_extension(filename).lower()
    if ext not in allowed:
        raise InvalidFile(
            "extension",
            f"File type not allowed. Allowed types: {', '.join(allowed)}",
        )
    return ext
