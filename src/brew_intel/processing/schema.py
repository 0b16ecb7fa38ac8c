"""Fixed schema for structured extraction from brewery content."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from brew_intel.errors import SchemaValidationFailed


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class BeerRelease(_CamelModel):
    """A beer being released."""

    name: str
    style: Optional[str] = None
    abv: Optional[float] = None
    ibu: Optional[float] = None
    description: Optional[str] = None
    release_date: Optional[str] = None
    availability: Optional[Literal["draft", "cans", "bottles", "limited", "ongoing"]] = None
    price: Optional[str] = None


class Event(_CamelModel):
    """A taproom or brewery event."""

    name: str
    date: str
    time: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    event_type: Optional[
        Literal["tasting", "release", "food-pairing", "live-music", "trivia", "tour", "festival", "other"]
    ] = None
    ticket_url: Optional[str] = None
    is_free: Optional[bool] = None
    rsvp_required: Optional[bool] = None


class Update(_CamelModel):
    """A general announcement."""

    title: str
    content: str
    category: Optional[
        Literal["hours", "menu", "announcement", "tap-list", "collaboration", "awards", "other"]
    ] = None
    urls: Optional[list[str]] = None


class ExtractedContent(_CamelModel):
    """Everything the LLM extracts from one content item."""

    content_type: Literal["release", "event", "update"]
    confidence: float = Field(ge=0, le=1)
    beer_releases: Optional[list[BeerRelease]] = None
    events: Optional[list[Event]] = None
    updates: Optional[list[Update]] = None
    summary: str
    tags: Optional[list[str]] = None
    call_to_action: Optional[str] = None


def validate_extraction(payload: object) -> ExtractedContent:
    """Validate raw LLM output against the schema."""
    try:
        return ExtractedContent.model_validate(payload)
    except ValidationError as e:
        raise SchemaValidationFailed(f"Failed to validate response: {e}") from e


EXTRACTION_TOOL = {
    "name": "extract_content",
    "description": "Extract structured brewery information from content",
    "input_schema": {
        "type": "object",
        "properties": {
            "contentType": {
                "type": "string",
                "enum": ["release", "event", "update"],
                "description": "Primary type of this content",
            },
            "confidence": {
                "type": "number",
                "minimum": 0,
                "maximum": 1,
                "description": "Confidence in the extraction (0-1)",
            },
            "beerReleases": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "style": {"type": "string"},
                        "abv": {"type": "number"},
                        "ibu": {"type": "number"},
                        "description": {"type": "string"},
                        "releaseDate": {"type": "string"},
                        "availability": {
                            "type": "string",
                            "enum": ["draft", "cans", "bottles", "limited", "ongoing"],
                        },
                        "price": {"type": "string"},
                    },
                    "required": ["name"],
                },
                "description": "Beer releases mentioned",
            },
            "events": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "date": {"type": "string"},
                        "time": {"type": "string"},
                        "location": {"type": "string"},
                        "description": {"type": "string"},
                        "eventType": {
                            "type": "string",
                            "enum": [
                                "tasting",
                                "release",
                                "food-pairing",
                                "live-music",
                                "trivia",
                                "tour",
                                "festival",
                                "other",
                            ],
                        },
                        "ticketUrl": {"type": "string"},
                        "isFree": {"type": "boolean"},
                        "rsvpRequired": {"type": "boolean"},
                    },
                    "required": ["name", "date"],
                },
                "description": "Events mentioned",
            },
            "updates": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "content": {"type": "string"},
                        "category": {
                            "type": "string",
                            "enum": [
                                "hours",
                                "menu",
                                "announcement",
                                "tap-list",
                                "collaboration",
                                "awards",
                                "other",
                            ],
                        },
                        "urls": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["title", "content"],
                },
                "description": "General updates",
            },
            "summary": {
                "type": "string",
                "description": "Brief summary of the entire content (2-3 sentences)",
            },
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Relevant tags or keywords",
            },
            "callToAction": {
                "type": "string",
                "description": "Main call to action if present",
            },
        },
        "required": ["contentType", "confidence", "summary"],
    },
}
