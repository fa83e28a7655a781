import subprocess
import sys
from pathlib import Path

import pytest

from fakes import FakeRunner, magick_fails, magick_ok, tesseract_fails, tesseract_returns
from receipt_ingest.errors import OCRProcessingFailure
from receipt_ingest.ocr.preprocessing import ImagePreprocessor
from receipt_ingest.ocr.runner import SubprocessRunner, ToolResult
from receipt_ingest.ocr.tesseract_backend import TesseractRecognizer


def _image(tmp_path: Path) -> Path:
    image = tmp_path / "receipt.jpg"
    image.write_bytes(b"jpeg")
    return image


def test_preprocessing_writes_enhanced_copy(tmp_path: Path) -> None:
    runner = FakeRunner(handlers={"magick": magick_ok})
    image = _image(tmp_path)

    out = ImagePreprocessor(runner=runner).enhance(image, tmp_path)

    assert out != image
    assert out.parent == tmp_path
    assert out.exists()
    args = runner.calls[0]
    assert args[1] == str(image)
    assert args[-1] == str(out)
    for flag in ["-density", "300", "Grayscale", "-normalize", "-sharpen"]:
        assert flag in args


def test_preprocessing_falls_back_on_nonzero_exit(tmp_path: Path) -> None:
    image = _image(tmp_path)
    runner = FakeRunner(handlers={"magick": magick_fails})
    assert ImagePreprocessor(runner=runner).enhance(image, tmp_path) == image


def test_preprocessing_falls_back_when_tool_missing(tmp_path: Path) -> None:
    image = _image(tmp_path)
    assert ImagePreprocessor(runner=FakeRunner()).enhance(image, tmp_path) == image


def test_preprocessing_falls_back_when_no_output(tmp_path: Path) -> None:
    image = _image(tmp_path)
    runner = FakeRunner(handlers={"magick": lambda args: ToolResult(output="", exit_code=0)})
    assert ImagePreprocessor(runner=runner).enhance(image, tmp_path) == image


def test_preprocessing_disabled_skips_tool(tmp_path: Path) -> None:
    image = _image(tmp_path)
    runner = FakeRunner(handlers={"magick": magick_ok})
    assert ImagePreprocessor(runner=runner, enabled=False).enhance(image, tmp_path) == image
    assert runner.calls == []


def test_recognition_returns_stripped_stdout(tmp_path: Path) -> None:
    image = _image(tmp_path)
    runner = FakeRunner(handlers={"tesseract": tesseract_returns("  WALMART\nTOTAL 6.49  ")})

    text = TesseractRecognizer(runner=runner).recognize(image)

    assert text == "WALMART\nTOTAL 6.49"
    args = runner.calls[0]
    assert args[:3] == ["tesseract", str(image), "stdout"]
    assert args[args.index("-l") + 1] == "eng"
    assert args[args.index("--psm") + 1] == "6"
    assert args[-1].startswith("tessedit_char_whitelist=")


def test_recognition_nonzero_exit_is_fatal(tmp_path: Path) -> None:
    runner = FakeRunner(handlers={"tesseract": tesseract_fails})
    with pytest.raises(OCRProcessingFailure) as info:
        TesseractRecognizer(runner=runner).recognize(_image(tmp_path))
    assert info.value.exit_code == 1


def test_recognition_missing_engine_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(OCRProcessingFailure):
        TesseractRecognizer(runner=FakeRunner()).recognize(_image(tmp_path))


def test_recognition_timeout_is_fatal(tmp_path: Path) -> None:
    def too_slow(args):
        raise subprocess.TimeoutExpired(args, 5)

    runner = FakeRunner(handlers={"tesseract": too_slow})
    with pytest.raises(OCRProcessingFailure, match="timed out"):
        TesseractRecognizer(runner=runner).recognize(_image(tmp_path))


def test_recognition_missing_image(tmp_path: Path) -> None:
    runner = FakeRunner(handlers={"tesseract": tesseract_returns("text")})
    with pytest.raises(OCRProcessingFailure):
        TesseractRecognizer(runner=runner).recognize(tmp_path / "gone.jpg")
    assert runner.calls == []


def test_subprocess_runner_captures_stdout_and_exit_code() -> None:
    result = SubprocessRunner().run([sys.executable, "-c", "import sys; print('ok'); sys.exit(3)"])
    assert result.output.strip() == "ok"
    assert result.exit_code == 3
    assert not result.ok


def test_subprocess_runner_missing_binary_raises_oserror(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        SubprocessRunner().run([str(tmp_path / "no-such-binary")])
