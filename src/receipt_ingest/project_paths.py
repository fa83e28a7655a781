from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _resolve_from_root(root: Path, value: str) -> Path:
    candidate = Path(value)
    if candidate.is_absolute():
        return candidate
    return (root / candidate).resolve()


def find_project_root(start: Path | None = None) -> Path:
    cursor = (start or Path.cwd()).resolve()
    for candidate in [cursor, *cursor.parents]:
        if (candidate / "pyproject.toml").exists():
            return candidate
    # Installed deployments have no pyproject.toml; data lives next to the process.
    return cursor


@dataclass(frozen=True, slots=True)
class ProjectPaths:
    root: Path
    data_dir: Path
    blob_dir: Path
    records_dir: Path
    work_dir: Path
    rules_dir: Path

    @classmethod
    def detect(cls, start: Path | None = None) -> "ProjectPaths":
        root = find_project_root(start)

        data_dir = _resolve_from_root(root, os.getenv("RECEIPT_INGEST_DATA_DIR", "data"))
        rules_dir = _resolve_from_root(root, os.getenv("RECEIPT_INGEST_RULES_DIR", str(data_dir / "rules")))

        return cls.under(data_dir, root=root, rules_dir=rules_dir)

    @classmethod
    def under(cls, data_dir: Path, *, root: Path | None = None, rules_dir: Path | None = None) -> "ProjectPaths":
        return cls(
            root=root or data_dir.parent,
            data_dir=data_dir,
            blob_dir=data_dir / "uploads",
            records_dir=data_dir / "records",
            work_dir=data_dir / "work",
            rules_dir=rules_dir or data_dir / "rules",
        )

    def ensure_dirs(self) -> None:
        (self.blob_dir / "receipts").mkdir(parents=True, exist_ok=True)
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self.work_dir.mkdir(parents=True, exist_ok=True)
