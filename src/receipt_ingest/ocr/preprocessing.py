from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from .runner import SubprocessRunner, ToolRunner

logger = logging.getLogger(__name__)

ENHANCE_FLAGS: tuple[str, ...] = (
    "-density", "300",
    "-type", "Grayscale",
    "-contrast-stretch", "0",
    "-normalize",
    "-sharpen", "0x1",
)


@dataclass(frozen=True, slots=True)
class ImagePreprocessor:
    """Best-effort ImageMagick enhancement ahead of recognition.

    Any failure degrades to the original image; recognizing an unenhanced
    image is better than not recognizing at all.
    """

    runner: ToolRunner = field(default_factory=SubprocessRunner)
    binary: str = "magick"
    enabled: bool = True

    def enhance(self, image_path: Path, work_dir: Path) -> Path:
        if not self.enabled:
            return image_path

        output_path = work_dir / f"processed_{image_path.stem}.png"
        args = [self.binary, str(image_path), *ENHANCE_FLAGS, str(output_path)]
        try:
            result = self.runner.run(args)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("ImageMagick not available, using original image %s: %s", image_path.name, exc)
            return image_path

        if not result.ok:
            logger.warning(
                "ImageMagick preprocessing failed (exit %d), using original image %s",
                result.exit_code,
                image_path.name,
            )
            return image_path
        if not output_path.exists():
            logger.warning("ImageMagick produced no output for %s, using original image", image_path.name)
            return image_path

        logger.info("Preprocessed %s -> %s", image_path.name, output_path.name)
        return output_path
