from __future__ import annotations

import base64
import io
import logging
import re
import time
from dataclasses import dataclass

import pytesseract
from PIL import Image


logger = logging.getLogger(__name__)

_IMAGE_DATA_URL_RE = re.compile(r"^data:image/[a-z]+;base64,", re.IGNORECASE)


class OCRError(RuntimeError):
    """Raised when screenshot text extraction fails."""


@dataclass(slots=True)
class OCRResult:
    text: str
    confidence: float
    processing_time_ms: float


def _decode_image(image_data: str) -> Image.Image:
    raw = _IMAGE_DATA_URL_RE.sub("", (image_data or "").strip(), count=1)
    image = Image.open(io.BytesIO(base64.b64decode(raw)))
    image.load()
    return image


def _mean_word_confidence(data: dict) -> float:
    scores = []
    for value in data.get("conf", []):
        try:
            score = float(value)
        except (TypeError, ValueError):
            continue
        # Tesseract reports -1 for layout rows that carry no word.
        if score >= 0:
            scores.append(score)
    return sum(scores) / len(scores) if scores else 0.0


def perform_ocr(image_data: str, *, language: str = "eng") -> OCRResult:
    """Extract text from a base64 screenshot (data URL or bare base64)."""
    start = time.perf_counter()
    try:
        image = _decode_image(image_data)
        text = pytesseract.image_to_string(image, lang=language)
        data = pytesseract.image_to_data(image, lang=language, output_type=pytesseract.Output.DICT)
    except Exception as exc:
        logger.error("OCR processing failed: %s", exc)
        raise OCRError(f"OCR failed: {exc}") from exc

    elapsed_ms = (time.perf_counter() - start) * 1000.0
    result = OCRResult(
        text=text.strip(),
        confidence=_mean_word_confidence(data),
        processing_time_ms=elapsed_ms,
    )
    logger.info(
        "OCR completed in %.0fms (%d chars, confidence %.1f%%)",
        elapsed_ms,
        len(result.text),
        result.confidence,
    )
    return result
