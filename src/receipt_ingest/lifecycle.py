from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from .errors import InvalidTransition, ReceiptNotFound
from .models import Receipt, ReceiptStatus, RecognitionResult
from .receipt.extractor import ExtractedFields
from .repository import ReceiptRepository
from .storage import StoredBlob

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[ReceiptStatus, set[ReceiptStatus]] = {
    ReceiptStatus.PROCESSING: {ReceiptStatus.PROCESSED, ReceiptStatus.FAILED},
}


def _check_transition(receipt: Receipt, target: ReceiptStatus) -> None:
    if target not in _TRANSITIONS.get(receipt.status, set()):
        raise InvalidTransition(
            f"Receipt {receipt.id} cannot move from {receipt.status.value} to {target.value}"
        )


@dataclass(frozen=True, slots=True)
class ReceiptLifecycle:
    """Single owner of a receipt's processing status.

    Every transition is one repository write carrying the status together
    with everything that changes alongside it.
    """

    repository: ReceiptRepository

    def create_placeholder(self, user_id: str, blob: StoredBlob, original_filename: str | None) -> Receipt:
        receipt = Receipt(
            user_id=user_id,
            image_url=blob.reference,
            original_filename=original_filename,
            status=ReceiptStatus.PROCESSING,
        )
        self.repository.add(receipt)
        logger.info("Created receipt record for processing: %s", receipt.id)
        return receipt

    def mark_processed(
        self,
        receipt_id: str,
        fields: ExtractedFields,
        recognition: RecognitionResult,
    ) -> Receipt | None:
        today = date.today()

        def apply(receipt: Receipt) -> Receipt:
            _check_transition(receipt, ReceiptStatus.PROCESSED)
            return receipt.model_copy(
                update={
                    "status": ReceiptStatus.PROCESSED,
                    "merchant_name": fields.merchant,
                    # A zero amount means nothing was found; leave the field unset.
                    "total_amount": fields.amount if fields.amount >= Decimal("0.01") else None,
                    "date": min(fields.date, today),
                    "items": list(fields.items),
                    "payment_info": fields.payment_info,
                    "ocr_data": recognition,
                }
            )

        committed = self._commit(receipt_id, apply)
        if committed is not None:
            logger.info(
                "Receipt %s processed: merchant=%r amount=%s confidence=%.2f",
                receipt_id,
                committed.merchant_name,
                committed.total_amount,
                recognition.confidence,
            )
        return committed

    def mark_failed(self, receipt_id: str, reason: str | None = None) -> Receipt | None:
        def apply(receipt: Receipt) -> Receipt:
            _check_transition(receipt, ReceiptStatus.FAILED)
            return receipt.model_copy(update={"status": ReceiptStatus.FAILED})

        committed = self._commit(receipt_id, apply)
        if committed is not None:
            logger.warning("Receipt %s marked FAILED: %s", receipt_id, reason or "unknown error")
        return committed

    def _commit(self, receipt_id: str, apply) -> Receipt | None:
        try:
            return self.repository.update(receipt_id, apply)
        except ReceiptNotFound:
            # The owner deleted the receipt while it was being processed.
            logger.warning("Receipt %s no longer exists; dropping pipeline result", receipt_id)
            return None
