from __future__ import annotations

import base64
import io

import pytest
from PIL import Image

from catfish.services import ocr
from catfish.services.ocr import OCRError, perform_ocr


def _png_data_url() -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color="white").save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def test_perform_ocr_returns_stripped_text_and_mean_confidence(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[str] = []

    def fake_to_string(image, lang: str = "eng") -> str:  # noqa: ANN001
        calls.append(lang)
        assert image.size == (8, 8)
        return "  Hello world \n"

    def fake_to_data(image, lang: str = "eng", output_type=None) -> dict:  # noqa: ANN001
        _ = image, output_type
        return {"conf": ["-1", "90", 70.0, "n/a"]}

    monkeypatch.setattr(ocr.pytesseract, "image_to_string", fake_to_string)
    monkeypatch.setattr(ocr.pytesseract, "image_to_data", fake_to_data)

    result = perform_ocr(_png_data_url(), language="deu")

    assert result.text == "Hello world"
    assert result.confidence == pytest.approx(80.0)
    assert result.processing_time_ms >= 0
    assert calls == ["deu"]


def test_perform_ocr_wraps_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(*args, **kwargs) -> str:  # noqa: ANN002, ANN003
        raise RuntimeError("tesseract is not installed")

    monkeypatch.setattr(ocr.pytesseract, "image_to_string", broken)

    with pytest.raises(OCRError, match="OCR failed: tesseract is not installed"):
        perform_ocr(_png_data_url())


def test_perform_ocr_rejects_non_image_payload() -> None:
    with pytest.raises(OCRError):
        perform_ocr("data:image/png;base64," + base64.b64encode(b"not an image").decode("ascii"))
