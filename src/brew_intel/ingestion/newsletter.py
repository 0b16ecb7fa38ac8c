"""Normalization of inbound brewery newsletters."""

import logging
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional

from brew_intel.errors import PermanentJobError
from brew_intel.ingestion.base import Attachment, RawItem, parse_datetime

logger = logging.getLogger(__name__)


def _parse_email_date(value) -> Optional[datetime]:
    """Accept RFC 2822 header dates as well as ISO-8601 strings."""
    if not value:
        return None
    if isinstance(value, str):
        try:
            return parse_datetime(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            pass
        try:
            return parse_datetime(parsedate_to_datetime(value))
        except (TypeError, ValueError) as e:
            raise PermanentJobError(f"Invalid email date: {value!r}") from e
    return parse_datetime(value)


def raw_item_from_email(payload: dict, received_at: Optional[datetime] = None) -> RawItem:
    """Turn a ``process-email`` payload into a raw item.

    The payload carries ``breweryId``, ``from``, ``subject``, ``html`` and/or
    ``text``, ``date``, ``messageId`` and ``attachments``. HTML is preferred
    as the raw content so inline images can later be replaced by their text.
    """
    brewery_id = payload.get("breweryId")
    if not brewery_id:
        raise PermanentJobError("Email payload is missing breweryId")

    body = payload.get("html") or payload.get("text") or ""
    if not body.strip() and not payload.get("attachments"):
        raise PermanentJobError(f"Email {payload.get('messageId')} has no content")

    sender = payload.get("from")
    publication_date = _parse_email_date(payload.get("date")) or received_at or datetime.utcnow()

    metadata = {
        "subject": payload.get("subject"),
        "from": sender,
        "date": publication_date.isoformat(),
        "messageId": payload.get("messageId"),
    }

    logger.debug(f"Normalized email {payload.get('messageId')} from {sender}")

    return RawItem(
        brewery_id=str(brewery_id),
        brewery_name=payload.get("breweryName"),
        source_type="email",
        source_url=f"mailto:{sender}" if sender else None,
        raw_html_or_text=body,
        publication_date=publication_date,
        attachments=[Attachment.from_payload(a) for a in payload.get("attachments") or []],
        metadata={key: value for key, value in metadata.items() if value},
    )
