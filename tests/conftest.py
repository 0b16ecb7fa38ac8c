"""
Pytest configuration and fixtures for the Brew Intel test suite.
"""

from datetime import datetime
from typing import Callable, Optional

import pytest

from brew_intel import config as config_module
from brew_intel.config import Config, DatabaseConfig, OCRConfig, QueuePolicy, QueuesConfig
from brew_intel.database.connection import close_db, init_db
from brew_intel.processing.extractor import ExtractionInput, ExtractionResult
from brew_intel.processing.ocr import OCRResult
from brew_intel.processing.schema import ExtractedContent


@pytest.fixture
def app_config(tmp_path, monkeypatch):
    """Config pointing at a temporary database, with no backoff between retries."""
    config = Config(
        database=DatabaseConfig(path=str(tmp_path / "brew_intel.db")),
        ocr=OCRConfig(enabled=False),
        queues=QueuesConfig(
            collect=QueuePolicy(concurrency=2, max_attempts=3, backoff_delay=0),
            extract=QueuePolicy(concurrency=2, max_attempts=3, backoff_delay=0),
            deduplicate=QueuePolicy(concurrency=1, max_attempts=2, backoff_delay=0),
        ),
    )
    monkeypatch.setattr(config_module, "_config", config)
    return config


@pytest.fixture
def db(app_config):
    """Create the schema in a fresh temporary SQLite database."""
    close_db()
    init_db()
    yield
    close_db()


@pytest.fixture
def store(db):
    from brew_intel.database import ContentStore

    return ContentStore()


@pytest.fixture
def make_item(store) -> Callable[..., str]:
    """Factory creating stored content items, optionally already extracted."""

    def _make(
        text: str,
        publication_date: datetime,
        brewery_id: str = "brewery-1",
        summary: Optional[str] = None,
        source_type: str = "email",
    ) -> str:
        item_id = store.create(
            brewery_id=brewery_id,
            source_type=source_type,
            raw_content=text,
            publication_date=publication_date,
        )
        if summary is not None:
            store.update_extraction(
                item_id,
                [],
                {"success": True, "contentType": "event", "confidence": 0.9, "summary": summary},
            )
        return item_id

    return _make


class FakeExtractor:
    """Stands in for ContentExtractor; maps content to a summary via a callable."""

    def __init__(self, summarize: Optional[Callable[[str], str]] = None, error: Optional[Exception] = None):
        self.summarize = summarize
        self.error = error
        self.calls: list[ExtractionInput] = []

    def extract(self, extraction_input: ExtractionInput) -> ExtractionResult:
        self.calls.append(extraction_input)

        if self.error is not None:
            raise self.error

        if self.summarize is None:
            return ExtractionResult(success=False, error="Failed to validate response")

        data = ExtractedContent(
            content_type="event",
            confidence=0.9,
            summary=self.summarize(extraction_input.content),
        )
        return ExtractionResult(success=True, data=data, tokens_used=120)


class FakeOCR:
    """Stands in for TesseractOCR; returns canned results in order."""

    def __init__(self, results: list[OCRResult]):
        self.results = results
        self.calls: list[list[bytes]] = []

    def extract_text_from_images(self, images):
        self.calls.append(list(images))
        return self.results[: len(images)]


@pytest.fixture
def fake_extractor_cls():
    return FakeExtractor


@pytest.fixture
def fake_ocr_cls():
    return FakeOCR
