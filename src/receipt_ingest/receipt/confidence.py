from __future__ import annotations

from datetime import datetime, timezone

from .extractor import AMOUNT_PATTERN, DATE_PATTERN

KEYWORD_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("TOTAL", 0.10),
    ("TAX", 0.05),
    ("RECEIPT", 0.05),
)


def score_text(text: str) -> float:
    """Advisory estimate in [0, 1] of how receipt-like the recognized text is."""
    if not text or not text.strip():
        return 0.0

    score = 0.0
    if AMOUNT_PATTERN.search(text):
        score += 0.30
    if DATE_PATTERN.search(text):
        score += 0.20
    if len(text) > 50:
        score += 0.20
    if len(text.splitlines()) > 5:
        score += 0.10

    upper = text.upper()
    for keyword, weight in KEYWORD_WEIGHTS:
        if keyword in upper:
            score += weight

    return round(min(score, 1.0), 2)


def text_statistics(text: str) -> dict:
    return {
        "line_count": len(text.splitlines()),
        "character_count": len(text),
        "word_count": len(text.split()),
        "extracted_at": datetime.now(timezone.utc).isoformat(),
    }
