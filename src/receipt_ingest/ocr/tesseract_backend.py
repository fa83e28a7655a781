from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import OCRProcessingFailure
from .runner import SubprocessRunner, ToolRunner

logger = logging.getLogger(__name__)

RECEIPT_CHAR_WHITELIST = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz .,/$-:"


@dataclass(frozen=True, slots=True)
class TesseractConfig:
    lang: str = "eng"
    # 6 = assume a single uniform block of text, which suits receipt columns.
    psm: int = 6
    char_whitelist: str = RECEIPT_CHAR_WHITELIST


@dataclass(frozen=True, slots=True)
class TesseractRecognizer:
    runner: ToolRunner = field(default_factory=SubprocessRunner)
    binary: str = "tesseract"
    config: TesseractConfig = field(default_factory=TesseractConfig)
    engine_id: str = "tesseract"

    def build_args(self, image_path: Path) -> list[str]:
        return [
            self.binary,
            str(image_path),
            "stdout",
            "-l", self.config.lang,
            "--psm", str(self.config.psm),
            "-c", f"tessedit_char_whitelist={self.config.char_whitelist}",
        ]

    def recognize(self, image_path: Path) -> str:
        if not image_path.exists():
            raise OCRProcessingFailure(f"Image not found: {image_path}")

        try:
            result = self.runner.run(self.build_args(image_path))
        except subprocess.TimeoutExpired as exc:
            raise OCRProcessingFailure(f"Tesseract OCR timed out after {exc.timeout}s") from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise OCRProcessingFailure(f"Tesseract OCR could not be started: {exc}") from exc

        if not result.ok:
            detail = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else ""
            raise OCRProcessingFailure(
                f"Tesseract OCR failed with exit code: {result.exit_code} {detail}".rstrip(),
                exit_code=result.exit_code,
            )

        text = result.output.strip()
        logger.info("Recognized %d characters from %s", len(text), image_path.name)
        return text
