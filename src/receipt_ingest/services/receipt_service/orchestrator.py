from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from pathlib import Path

from ...errors import PipelineClosed, ReceiptNotFound, StorageFailure
from ...lifecycle import ReceiptLifecycle
from ...models import Receipt, ReceiptStatus, RecognitionResult
from ...ocr.preprocessing import ImagePreprocessor
from ...ocr.runner import SubprocessRunner, ToolRunner
from ...ocr.tesseract_backend import TesseractRecognizer
from ...project_paths import ProjectPaths
from ...receipt.confidence import score_text, text_statistics
from ...receipt.extractor import extract_fields
from ...repository import ReceiptRepository
from ...rules.categorization import assign_category_hints
from ...rules.loader import RuleSet
from ...settings import IngestSettings
from ...storage import BlobStore
from ...validation import validate_upload

logger = logging.getLogger(__name__)


@contextmanager
def _scoped_work_dir(parent: Path, receipt_id: str) -> Iterator[Path]:
    parent.mkdir(parents=True, exist_ok=True)
    work_dir = Path(tempfile.mkdtemp(prefix=f"ocr_{receipt_id}_", dir=parent))
    try:
        yield work_dir
    finally:
        try:
            shutil.rmtree(work_dir)
        except OSError as exc:
            logger.warning("Failed to delete temporary files in %s: %s", work_dir, exc)


@dataclass(slots=True)
class ReceiptOrchestrator:
    """Upload entry point and background OCR pipeline.

    ``submit_upload`` runs on the caller's thread and returns a placeholder
    receipt at PROCESSING. Recognition and extraction run on a bounded worker
    pool; each run ends in exactly one PROCESSED or FAILED commit.
    """

    paths: ProjectPaths
    settings: IngestSettings
    repository: ReceiptRepository
    blob_store: BlobStore
    preprocessor: ImagePreprocessor
    recognizer: TesseractRecognizer
    ruleset: RuleSet = field(default_factory=RuleSet)
    today: date | None = None
    _lifecycle: ReceiptLifecycle = field(init=False)
    _executor: ThreadPoolExecutor = field(init=False)
    _in_flight: dict[str, Future] = field(init=False, default_factory=dict)
    _lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _closed: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._lifecycle = ReceiptLifecycle(self.repository)
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.workers,
            thread_name_prefix="receipt-ocr",
        )

    @classmethod
    def detect(cls, settings: IngestSettings | None = None) -> "ReceiptOrchestrator":
        settings = settings or IngestSettings.from_env()
        paths = ProjectPaths.detect()
        return cls.build(paths, settings)

    @classmethod
    def build(
        cls, paths: ProjectPaths, settings: IngestSettings, *, runner: ToolRunner | None = None
    ) -> "ReceiptOrchestrator":
        paths.ensure_dirs()
        runner = runner or SubprocessRunner(timeout_s=settings.tool_timeout_s)
        return cls(
            paths=paths,
            settings=settings,
            repository=ReceiptRepository(paths.records_dir),
            blob_store=BlobStore(paths.blob_dir, base_url=settings.base_url),
            preprocessor=ImagePreprocessor(runner=runner, binary=settings.magick_bin, enabled=settings.preprocess),
            recognizer=TesseractRecognizer(runner=runner, binary=settings.tesseract_bin),
            ruleset=RuleSet.load_if_present(paths.rules_dir),
        )

    @property
    def lifecycle(self) -> ReceiptLifecycle:
        return self._lifecycle

    # -- synchronous phase -------------------------------------------------

    def submit_upload(
        self,
        user_id: str,
        content: bytes,
        filename: str | None,
        size: int | None = None,
    ) -> Receipt:
        logger.info("Receipt upload request from user %s: %s", user_id, filename)
        if self._closed:
            raise PipelineClosed("Receipt processing is shut down")
        validate_upload(
            content,
            filename,
            size,
            max_bytes=self.settings.max_upload_bytes,
            allowed_extensions=self.settings.allowed_extensions,
        )
        blob = self.blob_store.store(user_id, content, filename)
        try:
            receipt = self._lifecycle.create_placeholder(user_id, blob, filename)
        except StorageFailure:
            self.blob_store.discard(blob)
            raise
        except OSError as exc:
            self.blob_store.discard(blob)
            raise StorageFailure(f"Failed to save receipt record: {exc}") from exc

        try:
            self.schedule(receipt.id)
        except RuntimeError as exc:
            # The pool shut down after the check above; undo the upload.
            self.repository.delete(receipt.id)
            self.blob_store.discard(blob)
            raise PipelineClosed("Receipt processing is shut down") from exc
        return receipt

    # -- asynchronous phase ------------------------------------------------

    def schedule(self, receipt_id: str) -> Future:
        with self._lock:
            existing = self._in_flight.get(receipt_id)
            if existing is not None and not existing.done():
                logger.warning("Receipt %s already has a processing run in flight", receipt_id)
                return existing

            receipt = self.repository.get(receipt_id)
            if receipt.status is not ReceiptStatus.PROCESSING:
                raise ValueError(
                    f"Receipt {receipt_id} is {receipt.status.value}; only PROCESSING receipts are processed"
                )

            future = self._executor.submit(self._run, receipt_id)
            self._in_flight[receipt_id] = future
        future.add_done_callback(lambda _f, rid=receipt_id: self._release(rid, _f))
        return future

    def _release(self, receipt_id: str, future: Future) -> None:
        with self._lock:
            if self._in_flight.get(receipt_id) is future:
                del self._in_flight[receipt_id]

    def in_flight(self, receipt_id: str) -> bool:
        with self._lock:
            return receipt_id in self._in_flight

    def _run(self, receipt_id: str) -> Receipt | None:
        """Run recognition for one receipt and commit its terminal state.

        Never raises: any failure becomes a FAILED commit.
        """
        try:
            return self._process(receipt_id)
        except ReceiptNotFound:
            logger.warning("Receipt %s was deleted before processing finished", receipt_id)
            return None
        except Exception as exc:
            logger.exception("OCR processing failed for receipt %s", receipt_id)
            try:
                return self._lifecycle.mark_failed(receipt_id, reason=str(exc))
            except Exception:
                logger.exception("Could not record failure for receipt %s", receipt_id)
                return None

    def _process(self, receipt_id: str) -> Receipt | None:
        receipt = self.repository.get(receipt_id)
        image_path = self.blob_store.path_for(receipt.image_url or "")

        with _scoped_work_dir(self.paths.work_dir, receipt_id) as work_dir:
            logger.info("Starting OCR processing for receipt %s (%s)", receipt_id, receipt.original_filename)
            enhanced = self.preprocessor.enhance(image_path, work_dir)
            text = self.recognizer.recognize(enhanced)

        fields = extract_fields(text, today=self.today or date.today())
        confidence = score_text(text)
        fields = replace(fields, items=assign_category_hints(fields.items, self.ruleset))

        recognition = RecognitionResult(
            extracted_text=text,
            confidence=confidence,
            processed_at=datetime.now(timezone.utc),
            ocr_engine=self.recognizer.engine_id,
            raw_data={**text_statistics(text), "preprocessed": enhanced != image_path},
        )
        logger.info("OCR processing completed for receipt %s with confidence: %.2f", receipt_id, confidence)
        return self._lifecycle.mark_processed(receipt_id, fields, recognition)

    # -- helpers -------------------------------------------------------------

    def wait(self, receipt_id: str, timeout: float | None = None) -> Receipt | None:
        with self._lock:
            future = self._in_flight.get(receipt_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.repository.find(receipt_id)

    def get_receipt(self, receipt_id: str) -> Receipt:
        return self.repository.get(receipt_id)

    def delete_receipt(self, receipt_id: str) -> None:
        self.repository.delete(receipt_id)

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait)
