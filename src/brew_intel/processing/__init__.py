"""Processing module for Brew Intel: OCR, LLM extraction and deduplication."""

from brew_intel.processing.deduplication import DeduplicationResult, DuplicateDetector
from brew_intel.processing.extractor import ContentExtractor, ExtractionInput, ExtractionResult
from brew_intel.processing.fingerprint import compute_signature, signature_similarity
from brew_intel.processing.ocr import OCRResult, TesseractOCR, inject_ocr_into_html
from brew_intel.processing.similarity import tfidf_cosine

__all__ = [
    "ContentExtractor",
    "ExtractionInput",
    "ExtractionResult",
    "DuplicateDetector",
    "DeduplicationResult",
    "compute_signature",
    "signature_similarity",
    "tfidf_cosine",
    "TesseractOCR",
    "OCRResult",
    "inject_ocr_into_html",
]
