from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from fakes import JPEG_BYTES, WALMART_TEXT, FakeRunner, magick_ok, tesseract_returns
from receipt_ingest.services.receipt_service.app import app, get_orchestrator


@pytest.fixture()
def orchestrator(make_orchestrator):
    runner = FakeRunner(handlers={"magick": magick_ok, "tesseract": tesseract_returns(WALMART_TEXT)})
    return make_orchestrator(runner)


@pytest.fixture()
def client(orchestrator) -> Iterator[TestClient]:
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _upload(client: TestClient, filename: str = "receipt.jpg", content: bytes = JPEG_BYTES, user_id: str = "user-1"):
    return client.post(
        "/receipts/upload",
        files={"file": (filename, content, "image/jpeg")},
        data={"user_id": user_id},
    )


def test_healthz(client: TestClient) -> None:
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_upload_accepts_and_processes(client: TestClient, orchestrator) -> None:
    response = _upload(client)

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "PROCESSING"
    assert body["user_id"] == "user-1"
    assert body["original_filename"] == "receipt.jpg"

    orchestrator.wait(body["id"], timeout=10)
    fetched = client.get(f"/receipts/{body['id']}", params={"user_id": "user-1"})

    assert fetched.status_code == 200
    assert fetched.json()["status"] == "PROCESSED"
    assert fetched.json()["merchant_name"] == "WALMART SUPERCENTER"
    assert [item["name"] for item in fetched.json()["items"]] == ["MILK", "BREAD"]


def test_upload_rejects_unsupported_extension(client: TestClient, orchestrator) -> None:
    response = _upload(client, filename="receipt.gif")

    assert response.status_code == 400
    assert response.json()["rule"] == "extension"
    assert orchestrator.repository.list_for_user("user-1") == []


def test_upload_rejects_empty_file(client: TestClient) -> None:
    response = _upload(client, content=b"")

    assert response.status_code == 400
    assert response.json()["rule"] == "empty"


def test_receipt_access_is_scoped_to_owner(client: TestClient, orchestrator) -> None:
    receipt_id = _upload(client).json()["id"]
    orchestrator.wait(receipt_id, timeout=10)

    assert client.get(f"/receipts/{receipt_id}", params={"user_id": "user-2"}).status_code == 403
    assert client.delete(f"/receipts/{receipt_id}", params={"user_id": "user-2"}).status_code == 403
    assert client.get("/receipts/does-not-exist", params={"user_id": "user-1"}).status_code == 404


def test_delete_receipt(client: TestClient, orchestrator) -> None:
    receipt_id = _upload(client).json()["id"]
    orchestrator.wait(receipt_id, timeout=10)

    deleted = client.delete(f"/receipts/{receipt_id}", params={"user_id": "user-1"})

    assert deleted.status_code == 204
    assert client.get(f"/receipts/{receipt_id}", params={"user_id": "user-1"}).status_code == 404


def test_upload_during_shutdown_is_unavailable(client: TestClient, orchestrator) -> None:
    orchestrator.shutdown()

    response = _upload(client)

    assert response.status_code == 503
    assert orchestrator.repository.list_for_user("user-1") == []
