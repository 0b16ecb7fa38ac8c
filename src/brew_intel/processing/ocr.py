"""OCR over image attachments and injection of the recognized text into content."""

import html
import io
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import pytesseract
from bs4 import BeautifulSoup
from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from brew_intel.config import OCRConfig, get_config
from brew_intel.errors import OCRFailure

logger = logging.getLogger(__name__)


@dataclass
class OCRWord:
    """A recognized word with its bounding box (x0, y0, x1, y1)."""

    text: str
    confidence: float
    bbox: tuple[int, int, int, int]


@dataclass
class OCRResult:
    """Text recognized in one image. Confidence is on a 0-1 scale."""

    text: str = ""
    confidence: float = 0.0
    words: list[OCRWord] = field(default_factory=list)


class TesseractOCR:
    """Tesseract-backed OCR engine."""

    def __init__(self, config: Optional[OCRConfig] = None):
        self.config = config or get_config().ocr

    def preprocess(self, image_bytes: bytes) -> Image.Image:
        """Grayscale, boost contrast, cap the width and sharpen."""
        image = Image.open(io.BytesIO(image_bytes))
        image = ImageOps.grayscale(image)
        image = ImageOps.autocontrast(image)

        if image.width > self.config.max_image_width:
            ratio = self.config.max_image_width / image.width
            image = image.resize((self.config.max_image_width, max(1, int(image.height * ratio))))

        return image.filter(ImageFilter.SHARPEN)

    def extract_text(self, image_bytes: bytes) -> OCRResult:
        """Recognize text in one image; raises ``OCRFailure`` on any error."""
        try:
            image = self.preprocess(image_bytes)
            data = pytesseract.image_to_data(
                image,
                lang=self.config.language,
                output_type=pytesseract.Output.DICT,
                timeout=self.config.timeout,
            )
        except (UnidentifiedImageError, OSError, RuntimeError, pytesseract.TesseractError) as e:
            raise OCRFailure(str(e)) from e

        words = []
        lines: dict[tuple[int, int, int], list[str]] = {}
        for i, text in enumerate(data["text"]):
            confidence = float(data["conf"][i])
            if not text.strip() or confidence < 0:
                continue

            words.append(
                OCRWord(
                    text=text,
                    confidence=confidence / 100,
                    bbox=(
                        data["left"][i],
                        data["top"][i],
                        data["left"][i] + data["width"][i],
                        data["top"][i] + data["height"][i],
                    ),
                )
            )
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(text)

        full_text = "\n".join(" ".join(line) for line in lines.values()).strip()
        confidence = sum(w.confidence for w in words) / len(words) if words else 0.0

        logger.info(f"OCR extracted {len(words)} words with {confidence * 100:.1f}% confidence")
        return OCRResult(text=full_text, confidence=confidence, words=words)

    def extract_text_from_images(self, images: Sequence[bytes]) -> list[OCRResult]:
        """OCR every image; a failed image yields an empty result."""
        logger.info(f"Extracting text from {len(images)} images")

        results = []
        for index, image_bytes in enumerate(images):
            try:
                results.append(self.extract_text(image_bytes))
            except OCRFailure as e:
                logger.error(f"Failed to process image {index + 1}/{len(images)}: {e}")
                results.append(OCRResult())

        return results


def _looks_like_html(content: str) -> bool:
    return bool(BeautifulSoup(content, "html.parser").find())


def inject_ocr_into_html(
    content: str,
    ocr_results: Sequence[OCRResult],
    labels: Optional[Sequence[str]] = None,
) -> str:
    """Return content with image references replaced by recognized text.

    In HTML the n-th ``<img>`` is replaced by a block holding the n-th OCR
    text; text from images without a matching tag, or from plain-text
    content, is appended. Content is returned unchanged when no image
    produced any text.
    """
    if not any(result.text for result in ocr_results):
        return content

    labels = list(labels or [])
    content = content or ""

    def label_for(index: int, fallback: str = "Image") -> str:
        return labels[index] if index < len(labels) and labels[index] else fallback

    if content and _looks_like_html(content):
        soup = BeautifulSoup(content, "html.parser")
        images = soup.find_all("img")

        for index, img in enumerate(images):
            if index >= len(ocr_results):
                break
            result = ocr_results[index]
            alt = img.get("alt") or label_for(index)

            block = soup.new_tag("div", attrs={"class": "ocr-extracted-text"})
            block["data-original-alt"] = alt
            block["data-confidence"] = f"{result.confidence * 100:.1f}"

            caption = soup.new_tag("p")
            caption.string = f"[Image: {alt}]"
            body = soup.new_tag("p")
            body.string = result.text or "[No text detected in image]"
            block.append(caption)
            block.append(body)

            img.replace_with(block)

        extra = [
            f'<div class="ocr-extracted-text"><p>[Image: {html.escape(label_for(i))}]</p>'
            f"<p>{html.escape(result.text)}</p></div>"
            for i, result in enumerate(ocr_results)
            if i >= len(images) and result.text
        ]
        return str(soup) + "".join(extra)

    blocks = [
        f"[Image: {label_for(i)}]\n{result.text}"
        for i, result in enumerate(ocr_results)
        if result.text
    ]
    return "\n\n".join([content] + blocks) if content else "\n\n".join(blocks)
