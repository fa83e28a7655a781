from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_ALLOWED_EXTENSIONS = ("jpg", "jpeg", "png", "pdf")


def _env_flag(name: str, default: str = "1") -> bool:
    return os.getenv(name, default) not in {"0", "false", "False", "no"}


def _env_float(name: str) -> float | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return float(value)


@dataclass(frozen=True, slots=True)
class IngestSettings:
    base_url: str = "http://localhost:8000"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS
    workers: int = 4
    magick_bin: str = "magick"
    tesseract_bin: str = "tesseract"
    preprocess: bool = True
    tool_timeout_s: float | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "IngestSettings":
        extensions = os.getenv("RECEIPT_INGEST_ALLOWED_EXTENSIONS", ",".join(DEFAULT_ALLOWED_EXTENSIONS))
        return cls(
            base_url=os.getenv("RECEIPT_INGEST_BASE_URL", "http://localhost:8000").rstrip("/"),
            max_upload_bytes=int(os.getenv("RECEIPT_INGEST_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))),
            allowed_extensions=tuple(e.strip().lower().lstrip(".") for e in extensions.split(",") if e.strip()),
            workers=max(1, int(os.getenv("RECEIPT_INGEST_WORKERS", "4"))),
            magick_bin=os.getenv("RECEIPT_INGEST_MAGICK_BIN", "magick"),
            tesseract_bin=os.getenv("RECEIPT_INGEST_TESSERACT_BIN", "tesseract"),
            preprocess=_env_flag("RECEIPT_INGEST_PREPROCESS"),
            tool_timeout_s=_env_float("RECEIPT_INGEST_TOOL_TIMEOUT_S"),
            log_level=os.getenv("RECEIPT_INGEST_LOG_LEVEL", "INFO").upper(),
        )
