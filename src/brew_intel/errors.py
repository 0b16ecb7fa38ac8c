"""Exception types shared across the content pipeline."""


class BrewIntelError(Exception):
    """Base class for pipeline errors."""


class PermanentJobError(BrewIntelError):
    """A job failure that retrying cannot fix (bad payload, missing row)."""

    retryable = False


class ContentItemNotFound(PermanentJobError):
    """The content item a job refers to does not exist."""

    def __init__(self, content_item_id: str):
        super().__init__(f"Content item {content_item_id} not found")
        self.content_item_id = content_item_id


class ProviderUnavailable(BrewIntelError):
    """An external provider (LLM, OCR, scraper) timed out or is rate limiting."""

    retryable = True


class SchemaValidationFailed(PermanentJobError):
    """The LLM returned output that does not match the extraction schema."""


class OCRFailure(BrewIntelError):
    """OCR failed for a single image."""


def is_retryable(error: BaseException) -> bool:
    """Return True unless the error is explicitly marked permanent."""
    return getattr(error, "retryable", True)
