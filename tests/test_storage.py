import re
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from receipt_ingest.errors import ReceiptNotFound, StorageFailure
from receipt_ingest.models import LineItem, Receipt, ReceiptStatus
from receipt_ingest.repository import ReceiptRepository
from receipt_ingest.storage import BlobStore, generate_blob_filename

_BLOB_NAME = re.compile(r"^[0-9a-f]{32}_\d{14}\.jpg$")


def test_blob_store_writes_under_owner_prefix(tmp_path: Path) -> None:
    store = BlobStore(tmp_path / "uploads", base_url="http://receipts.test/")

    blob = store.store("user-1", b"image-bytes", "Receipt.JPG")

    assert _BLOB_NAME.match(blob.filename)
    assert blob.path == tmp_path / "uploads" / "receipts" / "user-1" / blob.filename
    assert blob.path.read_bytes() == b"image-bytes"
    assert blob.reference == f"http://receipts.test/receipts/user-1/{blob.filename}"
    assert store.path_for(blob.reference) == blob.path


def test_blob_store_never_reuses_a_name(tmp_path: Path) -> None:
    store = BlobStore(tmp_path)
    first = store.store("u", b"one", "r.png")
    second = store.store("u", b"two", "r.png")
    assert first.reference != second.reference
    assert first.path.read_bytes() == b"one"
    assert second.path.read_bytes() == b"two"


def test_blob_store_write_failure_is_storage_failure(tmp_path: Path) -> None:
    not_a_dir = tmp_path / "uploads"
    not_a_dir.write_text("occupied", encoding="utf-8")
    with pytest.raises(StorageFailure):
        BlobStore(not_a_dir).store("u", b"data", "r.jpg")


@pytest.mark.parametrize("owner", ["", "..", "a/b", "a\\b"])
def test_blob_store_rejects_unsafe_owner(tmp_path: Path, owner: str) -> None:
    with pytest.raises(StorageFailure):
        BlobStore(tmp_path).store(owner, b"data", "r.jpg")


def test_path_for_rejects_foreign_reference(tmp_path: Path) -> None:
    store = BlobStore(tmp_path, base_url="http://receipts.test")
    with pytest.raises(StorageFailure):
        store.path_for("http://elsewhere/receipts/u/x.jpg")
    with pytest.raises(StorageFailure):
        store.path_for("http://receipts.test/receipts/u/../../etc/passwd")


def test_generate_blob_filename_keeps_extension() -> None:
    assert generate_blob_filename("scan.PDF").endswith(".pdf")
    assert "." not in generate_blob_filename("noext")


def test_repository_round_trip(tmp_path: Path) -> None:
    repo = ReceiptRepository(tmp_path / "records")
    receipt = Receipt(
        user_id="u1",
        merchant_name="CORNER DELI",
        total_amount=Decimal("12.14"),
        date=date(2024, 1, 15),
        items=[LineItem(name="COFFEE", unit_price=Decimal("2.25"), total_price=Decimal("2.25"))],
        status=ReceiptStatus.PROCESSED,
    )
    repo.add(receipt)

    loaded = repo.get(receipt.id)

    assert loaded.model_dump() == receipt.model_dump()
    assert loaded.total_amount == Decimal("12.14")


def test_repository_rejects_duplicate_ids(tmp_path: Path) -> None:
    repo = ReceiptRepository(tmp_path)
    receipt = Receipt(user_id="u1")
    repo.add(receipt)
    with pytest.raises(ValueError):
        repo.add(receipt)


def test_repository_write_failure_is_storage_failure(tmp_path: Path) -> None:
    records = tmp_path / "records"
    repo = ReceiptRepository(records)
    records.rmdir()
    records.write_text("occupied", encoding="utf-8")

    with pytest.raises(StorageFailure):
        repo.add(Receipt(user_id="u1"))


def test_repository_update_keeps_identity_and_bumps_updated_at(tmp_path: Path) -> None:
    repo = ReceiptRepository(tmp_path)
    receipt = repo.add(Receipt(user_id="u1", status=ReceiptStatus.PROCESSING))

    updated = repo.update(
        receipt.id,
        lambda r: r.model_copy(update={"status": ReceiptStatus.FAILED, "user_id": "intruder"}),
    )

    assert updated.status is ReceiptStatus.FAILED
    assert updated.user_id == "u1"
    assert updated.created_at == receipt.created_at
    assert updated.updated_at >= receipt.updated_at
    assert repo.get(receipt.id).model_dump() == updated.model_dump()
    assert not list(tmp_path.glob("*.tmp"))


def test_repository_delete_and_missing(tmp_path: Path) -> None:
    repo = ReceiptRepository(tmp_path)
    receipt = repo.add(Receipt(user_id="u1"))

    repo.delete(receipt.id)

    assert repo.find(receipt.id) is None
    with pytest.raises(ReceiptNotFound):
        repo.get(receipt.id)
    with pytest.raises(ReceiptNotFound):
        repo.delete(receipt.id)
    with pytest.raises(ReceiptNotFound):
        repo.update(receipt.id, lambda r: r)


def test_repository_lists_receipts_for_owner(tmp_path: Path) -> None:
    repo = ReceiptRepository(tmp_path)
    mine = [repo.add(Receipt(user_id="me")) for _ in range(2)]
    repo.add(Receipt(user_id="someone-else"))

    listed = repo.list_for_user("me")

    assert {r.id for r in listed} == {r.id for r in mine}
