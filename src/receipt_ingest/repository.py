from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from .errors import ReceiptNotFound, StorageFailure
from .models import Receipt, utcnow
from .storage import write_json

logger = logging.getLogger(__name__)


class ReceiptRepository:
    """JSON document store holding one file per receipt.

    Every write replaces the whole document, so a commit either lands
    completely or not at all. Read-modify-write cycles go through
    :meth:`update`, which holds the store lock for the full cycle.
    """

    def __init__(self, records_dir: Path) -> None:
        self.records_dir = records_dir
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, receipt_id: str) -> Path:
        if not receipt_id or "/" in receipt_id or "\\" in receipt_id or receipt_id.startswith("."):
            raise ReceiptNotFound(receipt_id)
        return self.records_dir / f"{receipt_id}.json"

    def add(self, receipt: Receipt) -> Receipt:
        with self._lock:
            path = self._path(receipt.id)
            if path.exists():
                raise ValueError(f"Receipt already exists: {receipt.id}")
            try:
                write_json(path, receipt.model_dump(mode="json"))
            except OSError as exc:
                raise StorageFailure(f"Failed to save receipt {receipt.id}: {exc}") from exc
        return receipt

    def get(self, receipt_id: str) -> Receipt:
        with self._lock:
            path = self._path(receipt_id)
            try:
                raw = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                raise ReceiptNotFound(receipt_id) from None
        return Receipt.model_validate_json(raw)

    def find(self, receipt_id: str) -> Receipt | None:
        try:
            return self.get(receipt_id)
        except ReceiptNotFound:
            return None

    def update(self, receipt_id: str, mutate: Callable[[Receipt], Receipt]) -> Receipt:
        with self._lock:
            current = self.get(receipt_id)
            updated = mutate(current)
            # Identity and creation time are fixed; every mutation bumps updated_at.
            updated = updated.model_copy(
                update={
                    "id": current.id,
                    "user_id": current.user_id,
                    "created_at": current.created_at,
                    "updated_at": utcnow(),
                }
            )
            write_json(self._path(receipt_id), updated.model_dump(mode="json"))
        return updated

    def delete(self, receipt_id: str) -> None:
        with self._lock:
            try:
                self._path(receipt_id).unlink()
            except FileNotFoundError:
                raise ReceiptNotFound(receipt_id) from None
        logger.info("Deleted receipt %s", receipt_id)

    def list_for_user(self, user_id: str) -> list[Receipt]:
        with self._lock:
            paths = sorted(self.records_dir.glob("*.json"))
            receipts = [Receipt.model_validate_json(p.read_text(encoding="utf-8")) for p in paths]
        receipts = [r for r in receipts if r.user_id == user_id]
        receipts.sort(key=lambda r: r.created_at, reverse=True)
        return receipts
