"""Content collection module for Brew Intel."""

from typing import Optional

from brew_intel.ingestion.base import Attachment, BaseCollector, RawItem
from brew_intel.ingestion.newsletter import raw_item_from_email
from brew_intel.ingestion.rss import RssCollector

__all__ = [
    "Attachment",
    "BaseCollector",
    "RawItem",
    "RssCollector",
    "raw_item_from_email",
    "default_collectors",
]


def default_collectors(overrides: Optional[dict[str, BaseCollector]] = None) -> dict[str, BaseCollector]:
    """Collectors keyed by the scrape job kind they serve.

    Instagram and Facebook scraping need browser automation and are only
    available when a collector is supplied in ``overrides``.
    """
    collectors: dict[str, BaseCollector] = {
        "fetch-rss": RssCollector(),
    }
    collectors.update(overrides or {})
    return collectors
