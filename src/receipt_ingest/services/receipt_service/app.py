from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse

from ...errors import InvalidFile, PipelineClosed, ReceiptNotFound, StorageFailure
from ...models import Receipt
from ...settings import IngestSettings
from .orchestrator import ReceiptOrchestrator

settings = IngestSettings.from_env()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s  %(name)-40s  %(levelname)-7s  %(message)s",
)
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_orchestrator() -> ReceiptOrchestrator:
    return ReceiptOrchestrator.detect(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if get_orchestrator.cache_info().currsize:
        logger.info("Shutting down OCR worker pool")
        get_orchestrator().shutdown(wait=True)


app = FastAPI(title="Receipt Ingest Service", version="0.1.0", lifespan=lifespan)


@app.exception_handler(InvalidFile)
async def invalid_file_handler(request: Request, exc: InvalidFile) -> JSONResponse:
    logger.info("Rejected upload (%s): %s", exc.rule, exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc), "rule": exc.rule})


@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure) -> JSONResponse:
    logger.error("Storage failure: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Failed to store receipt"},
    )


@app.exception_handler(PipelineClosed)
async def pipeline_closed_handler(request: Request, exc: PipelineClosed) -> JSONResponse:
    logger.warning("Rejected upload during shutdown: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Receipt processing is unavailable"},
    )


def _owned_receipt(orchestrator: ReceiptOrchestrator, receipt_id: str, user_id: str) -> Receipt:
    try:
        receipt = orchestrator.get_receipt(receipt_id)
    except ReceiptNotFound:
        raise HTTPException(status_code=404, detail=f"Receipt not found with id: {receipt_id}") from None
    if receipt.user_id != user_id:
        raise HTTPException(status_code=403, detail="Receipt does not belong to user")
    return receipt


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


@app.post("/receipts/upload", response_model=Receipt, status_code=status.HTTP_202_ACCEPTED)
async def upload_receipt(
    file: UploadFile = File(...),
    user_id: str = Form(..., min_length=1),
    orchestrator: ReceiptOrchestrator = Depends(get_orchestrator),
) -> Receipt:
    content = await file.read()
    return orchestrator.submit_upload(user_id, content, file.filename, size=len(content))


@app.get("/receipts/{receipt_id}", response_model=Receipt)
def get_receipt(
    receipt_id: str,
    user_id: str = Query(..., min_length=1),
    orchestrator: ReceiptOrchestrator = Depends(get_orchestrator),
) -> Receipt:
    return _owned_receipt(orchestrator, receipt_id, user_id)


@app.delete("/receipts/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_receipt(
    receipt_id: str,
    user_id: str = Query(..., min_length=1),
    orchestrator: ReceiptOrchestrator = Depends(get_orchestrator),
) -> Response:
    _owned_receipt(orchestrator, receipt_id, user_id)
    try:
        orchestrator.delete_receipt(receipt_id)
    except ReceiptNotFound:
        raise HTTPException(status_code=404, detail=f"Receipt not found with id: {receipt_id}") from None
    return Response(status_code=status.HTTP_204_NO_CONTENT)
