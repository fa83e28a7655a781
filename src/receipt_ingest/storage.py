from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .errors import StorageFailure
from .validation import file_extension

logger = logging.getLogger(__name__)


def write_json(path: Path, data: object) -> None:
    write_text_atomic(path, json.dumps(data, ensure_ascii=False, indent=2))


def write_text_atomic(path: Path, text: str) -> None:
    # Readers only ever see the previous or the new document, never a torn one.
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def generate_blob_filename(original_filename: str | None, *, now: datetime | None = None) -> str:
    ext = file_extension(original_filename).lower()
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    name = f"{uuid.uuid4().hex}_{stamp}"
    return f"{name}.{ext}" if ext else name


def _safe_owner(owner_id: str) -> str:
    if not owner_id or owner_id in {".", ".."} or "/" in owner_id or "\\" in owner_id or "\x00" in owner_id:
        raise StorageFailure(f"Owner id is not usable as a storage prefix: {owner_id!r}")
    return owner_id


@dataclass(frozen=True, slots=True)
class StoredBlob:
    reference: str
    path: Path
    filename: str


@dataclass(frozen=True, slots=True)
class BlobStore:
    root: Path
    base_url: str = "http://localhost:8000"

    def store(self, owner_id: str, content: bytes, filename: str | None) -> StoredBlob:
        owner = _safe_owner(owner_id)
        generated = generate_blob_filename(filename)
        owner_dir = self.root / "receipts" / owner
        path = owner_dir / generated
        try:
            owner_dir.mkdir(parents=True, exist_ok=True)
            # "xb" refuses to replace an existing blob.
            with path.open("xb") as fh:
                fh.write(content)
        except OSError as exc:
            raise StorageFailure(f"Failed to store receipt image for {owner}: {exc}") from exc

        reference = self.reference_for(owner, generated)
        logger.info("Stored receipt image %s (%d bytes)", reference, len(content))
        return StoredBlob(reference=reference, path=path, filename=generated)

    def discard(self, blob: StoredBlob) -> None:
        try:
            blob.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to remove orphaned receipt image %s: %s", blob.path, exc)

    def reference_for(self, owner_id: str, generated_filename: str) -> str:
        return f"{self.base_url.rstrip('/')}/receipts/{owner_id}/{generated_filename}"

    def path_for(self, reference: str) -> Path:
        prefix = f"{self.base_url.rstrip('/')}/receipts/"
        if not reference.startswith(prefix):
            raise StorageFailure(f"Reference is not managed by this store: {reference}")
        owner, _, generated = reference[len(prefix) :].partition("/")
        if not generated or "/" in generated:
            raise StorageFailure(f"Malformed receipt image reference: {reference}")
        return self.root / "receipts" / _safe_owner(owner) / generated
