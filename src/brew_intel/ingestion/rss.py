"""RSS/Atom feed collector for brewery blogs and news pages."""

import logging
import ssl
import urllib.request
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional

import certifi
import feedparser

from brew_intel.errors import PermanentJobError, ProviderUnavailable
from brew_intel.ingestion.base import BaseCollector, RawItem, parse_datetime

logger = logging.getLogger(__name__)


class RssCollector(BaseCollector):
    """Collector for RSS/Atom feeds.

    Options: ``breweryId``, ``feedUrl``, optional ``breweryName`` and
    ``since`` (ISO date; older entries are skipped).
    """

    source_type = "rss"

    def validate_options(self, options: dict) -> list[str]:
        errors = []
        if not options.get("breweryId"):
            errors.append("RSS collection requires 'breweryId'")
        if not options.get("feedUrl"):
            errors.append("RSS collection requires 'feedUrl'")
        return errors

    def collect(self, options: dict) -> list[RawItem]:
        errors = self.validate_options(options)
        if errors:
            raise PermanentJobError("; ".join(errors))

        url = options["feedUrl"]
        since = parse_datetime(options["since"]) if options.get("since") else None
        logger.info(f"Fetching RSS feed: {url}")

        # Create SSL context with certifi certificates
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        handlers = [urllib.request.HTTPSHandler(context=ssl_context)]
        feed = feedparser.parse(url, handlers=handlers)

        if feed.bozo and feed.bozo_exception:
            if not feed.entries:
                raise ProviderUnavailable(f"Failed to fetch feed {url}: {feed.bozo_exception}")
            logger.warning(f"Feed parsing warning: {feed.bozo_exception}")

        items = []
        for entry in feed.entries:
            item = self._parse_entry(entry, options)
            if item is None:
                continue
            if since and item.publication_date < since:
                continue
            items.append(item)

        logger.info(f"Found {len(items)} items in feed {url}")
        return items

    def _parse_entry(self, entry, options: dict) -> Optional[RawItem]:
        """Parse a feed entry into a raw item."""
        # Prefer full content, fall back to summary
        content_html = None
        if "content" in entry and entry.content:
            content_html = entry.content[0].get("value", "")
        elif "summary" in entry:
            content_html = entry.summary

        if not content_html:
            return None

        published_at = self._published_at(entry)
        if published_at is None:
            logger.debug(f"Skipping entry without a date: {entry.get('link')}")
            return None

        return RawItem(
            brewery_id=str(options["breweryId"]),
            brewery_name=options.get("breweryName"),
            source_type=self.source_type,
            source_url=entry.get("link"),
            raw_html_or_text=content_html,
            publication_date=published_at,
            metadata={
                key: value
                for key, value in {
                    "title": entry.get("title"),
                    "url": entry.get("link"),
                    "date": published_at.isoformat(),
                }.items()
                if value
            },
        )

    def _published_at(self, entry) -> Optional[datetime]:
        if "published_parsed" in entry and entry.published_parsed:
            try:
                return datetime(*entry.published_parsed[:6])
            except (TypeError, ValueError):
                pass
        if "published" in entry:
            try:
                return parse_datetime(parsedate_to_datetime(entry.published))
            except (TypeError, ValueError):
                pass
        if "updated_parsed" in entry and entry.updated_parsed:
            try:
                return datetime(*entry.updated_parsed[:6])
            except (TypeError, ValueError):
                pass
        return None
