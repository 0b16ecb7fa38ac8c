"""
Tests for OCR over image attachments and injection of recognized text.
"""

import io
from unittest.mock import patch

import pytesseract
import pytest
from PIL import Image

from brew_intel.config import OCRConfig
from brew_intel.errors import OCRFailure
from brew_intel.processing.ocr import OCRResult, TesseractOCR, inject_ocr_into_html


def png_bytes(width=40, height=20):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


TESSERACT_DATA = {
    "text": ["", "HAZY", "IPA", "", "SAT", "4PM"],
    "conf": ["-1", "96", "90", "-1", "88", "86"],
    "left": [0, 1, 20, 0, 1, 20],
    "top": [0, 1, 1, 0, 15, 15],
    "width": [0, 15, 10, 0, 12, 12],
    "height": [0, 10, 10, 0, 10, 10],
    "block_num": [1, 1, 1, 1, 1, 1],
    "par_num": [1, 1, 1, 1, 1, 1],
    "line_num": [0, 1, 1, 0, 2, 2],
}


class TestTesseractOCR:
    """Tests for TesseractOCR with the tesseract binary mocked out."""

    def test_words_grouped_into_lines(self):
        ocr = TesseractOCR(OCRConfig())

        with patch("brew_intel.processing.ocr.pytesseract.image_to_data", return_value=TESSERACT_DATA):
            result = ocr.extract_text(png_bytes())

        assert result.text == "HAZY IPA\nSAT 4PM"
        assert len(result.words) == 4
        assert result.confidence == pytest.approx(0.9)
        assert result.words[0].bbox == (1, 1, 16, 11)

    def test_wide_images_downscaled(self):
        ocr = TesseractOCR(OCRConfig(max_image_width=100))

        image = ocr.preprocess(png_bytes(width=400, height=100))

        assert image.size == (100, 25)
        assert image.mode == "L"

    def test_unreadable_image_raises_ocr_failure(self):
        ocr = TesseractOCR(OCRConfig())

        with pytest.raises(OCRFailure):
            ocr.extract_text(b"definitely not an image")

    def test_tesseract_error_raises_ocr_failure(self):
        ocr = TesseractOCR(OCRConfig())
        error = pytesseract.TesseractError(1, "tesseract crashed")

        with patch("brew_intel.processing.ocr.pytesseract.image_to_data", side_effect=error):
            with pytest.raises(OCRFailure):
                ocr.extract_text(png_bytes())

    def test_failed_image_degrades_to_empty_result(self):
        ocr = TesseractOCR(OCRConfig())

        with patch("brew_intel.processing.ocr.pytesseract.image_to_data", return_value=TESSERACT_DATA):
            results = ocr.extract_text_from_images([png_bytes(), b"corrupt", png_bytes()])

        assert [r.text for r in results] == ["HAZY IPA\nSAT 4PM", "", "HAZY IPA\nSAT 4PM"]
        assert results[1].confidence == 0.0


class TestInjectOcrText:
    """Tests for replacing image references with recognized text."""

    def test_nth_img_replaced_by_nth_result(self):
        html = '<p>Events</p><img src="a.png" alt="poster"><img src="b.png">'
        results = [OCRResult(text="TRIVIA TUESDAY", confidence=0.8), OCRResult(text="LIVE MUSIC", confidence=0.7)]

        enriched = inject_ocr_into_html(html, results, labels=["a.png", "b.png"])

        assert "<img" not in enriched
        assert enriched.index("TRIVIA TUESDAY") < enriched.index("LIVE MUSIC")
        assert "[Image: poster]" in enriched
        assert "[Image: b.png]" in enriched

    def test_plain_text_gets_appended_blocks(self):
        enriched = inject_ocr_into_html(
            "New can release!",
            [OCRResult(text="COLD PRESS 8.2%", confidence=0.9), OCRResult()],
            labels=["label.jpg", "blank.jpg"],
        )

        assert enriched == "New can release!\n\n[Image: label.jpg]\nCOLD PRESS 8.2%"

    def test_extra_results_without_img_tags_appended(self):
        enriched = inject_ocr_into_html("<p>Hi</p>", [OCRResult(text="FESTIVAL <SAT>", confidence=0.9)])

        assert "FESTIVAL &lt;SAT&gt;" in enriched
        assert enriched.startswith("<p>Hi</p>")

    def test_no_text_returns_original(self):
        html = '<img src="a.png">'

        assert inject_ocr_into_html(html, [OCRResult(), OCRResult()]) == html
        assert inject_ocr_into_html(html, []) == html
