"""Normalized raw item contract and the base class for collectors."""

import base64
import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from bs4 import BeautifulSoup

from brew_intel.errors import PermanentJobError

SOURCE_TYPES = ("email", "instagram", "facebook", "rss")


def parse_datetime(value: Any) -> datetime:
    """Parse an ISO-8601 string (or pass a datetime through) as naive UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise PermanentJobError(f"Invalid date: {value!r}") from e
    else:
        raise PermanentJobError(f"Missing or invalid date: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def html_to_text(html: str) -> str:
    """Convert HTML to plain text."""
    soup = BeautifulSoup(html, "html.parser")

    # Remove script and style elements
    for element in soup(["script", "style"]):
        element.decompose()

    text = soup.get_text(separator=" ", strip=True)
    return " ".join(text.split())


@dataclass
class Attachment:
    """A file attached to a raw item (email attachment, post image)."""

    filename: str
    content_type: str
    content: bytes = b""

    @property
    def is_image(self) -> bool:
        return self.content_type.lower().startswith("image/")

    @classmethod
    def from_payload(cls, data: dict) -> "Attachment":
        content = data.get("content") or b""
        if isinstance(content, str):
            try:
                content = base64.b64decode(content, validate=True)
            except (binascii.Error, ValueError) as e:
                raise PermanentJobError(
                    f"Attachment {data.get('filename')!r} is not valid base64"
                ) from e

        return cls(
            filename=data.get("filename") or "attachment",
            content_type=data.get("contentType") or "application/octet-stream",
            content=content,
        )

    def to_payload(self) -> dict:
        return {
            "filename": self.filename,
            "contentType": self.content_type,
            "content": self.content,
        }

    def describe(self) -> dict:
        """Metadata kept on the content item (the bytes are not stored)."""
        return {
            "filename": self.filename,
            "contentType": self.content_type,
            "size": len(self.content),
        }


@dataclass
class RawItem:
    """What every collector hands to the collection stage."""

    brewery_id: str
    source_type: str
    raw_html_or_text: str
    publication_date: datetime
    source_url: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    brewery_name: Optional[str] = None

    @property
    def images(self) -> list[Attachment]:
        return [attachment for attachment in self.attachments if attachment.is_image]

    @classmethod
    def from_payload(cls, data: dict) -> "RawItem":
        """Build a raw item from a camelCase job payload.

        Raises ``PermanentJobError`` for payloads no retry could fix.
        """
        brewery_id = data.get("breweryId")
        if not brewery_id:
            raise PermanentJobError("Raw item is missing breweryId")

        source_type = data.get("sourceType")
        if source_type not in SOURCE_TYPES:
            raise PermanentJobError(f"Unknown source type: {source_type!r}")

        return cls(
            brewery_id=str(brewery_id),
            source_type=source_type,
            raw_html_or_text=data.get("rawHtmlOrText") or "",
            publication_date=parse_datetime(data.get("publicationDate")),
            source_url=data.get("sourceUrl"),
            attachments=[Attachment.from_payload(a) for a in data.get("attachments") or []],
            metadata=dict(data.get("metadata") or {}),
            brewery_name=data.get("breweryName"),
        )

    def to_payload(self) -> dict:
        return {
            "breweryId": self.brewery_id,
            "breweryName": self.brewery_name,
            "sourceType": self.source_type,
            "sourceUrl": self.source_url,
            "rawHtmlOrText": self.raw_html_or_text,
            "publicationDate": self.publication_date.isoformat(),
            "attachments": [a.to_payload() for a in self.attachments],
            "metadata": self.metadata,
        }


class BaseCollector(ABC):
    """Fetches source material for one brewery and normalizes it to raw items."""

    source_type: str = "unknown"

    @abstractmethod
    def collect(self, options: dict) -> list[RawItem]:
        """Collect raw items.

        Args:
            options: The scrape job payload (breweryId plus source options)

        Returns:
            List of RawItem objects
        """
        pass

    def validate_options(self, options: dict) -> list[str]:
        """Validate the job options.

        Returns:
            List of validation error messages (empty if valid)
        """
        return []
