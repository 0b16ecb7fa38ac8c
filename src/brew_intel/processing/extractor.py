"""LLM-based content extraction using Claude API."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import anthropic

from brew_intel.config import ExtractionConfig, get_config
from brew_intel.errors import ProviderUnavailable, SchemaValidationFailed
from brew_intel.processing.schema import EXTRACTION_TOOL, ExtractedContent, validate_extraction

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert at extracting structured information from brewery communications.

Your task is to analyze content from breweries (emails, social posts, website updates) and extract:
1. Beer Releases - new beers being released, their styles, ABV, descriptions, availability
2. Events - taproom events, tastings, food pairings, live music, festivals
3. General Updates - hours changes, menu updates, tap lists, announcements, collaborations, awards

Guidelines:
- Extract ALL relevant information, even if it appears multiple times
- Preserve relative dates ("this Saturday", "next week") as written
- Set contentType to the PRIMARY type of content (release/event/update)
- Include multiple items in arrays if multiple beers/events/updates are mentioned
- Extract URLs exactly as they appear
- For prices, include currency and exact wording (e.g. "$5 pints")
- For beer availability, use: draft, cans, bottles, limited, ongoing
- Provide a concise 2-3 sentence summary of the overall content
- Extract relevant tags/keywords and the main call to action if present

Confidence scoring:
- 0.9-1.0: clear, complete information with all key details
- 0.7-0.9: most information present, minor details missing
- 0.5-0.7: partial information, significant details missing
- 0.3-0.5: vague or incomplete information
- 0.0-0.3: very uncertain or speculative extraction"""

# Metadata keys shown to the model, in display order
METADATA_FIELDS = (("subject", "Subject"), ("from", "From"), ("date", "Date"), ("url", "URL"), ("title", "Title"))


@dataclass
class ExtractionInput:
    """Content handed to the extractor."""

    content: str
    source_type: str
    brewery_name: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExtractionResult:
    """Result of content extraction."""

    success: bool
    data: Optional[ExtractedContent] = None
    error: Optional[str] = None
    tokens_used: Optional[int] = None

    def to_record(self) -> dict:
        """The ``llmExtraction`` entry stored on the content item."""
        if not self.success or self.data is None:
            return {"success": False, "error": self.error or "Unknown extraction error"}

        record = {"success": True, "tokensUsed": self.tokens_used}
        record.update(self.data.to_dict())
        return record


def build_prompt(extraction_input: ExtractionInput) -> str:
    """Build the user message for an extraction request."""
    parts = []

    if extraction_input.brewery_name:
        parts.append(f"Brewery: {extraction_input.brewery_name}")

    parts.append(f"Source Type: {extraction_input.source_type.upper()}")

    metadata_lines = [
        f"- {label}: {extraction_input.metadata[key]}"
        for key, label in METADATA_FIELDS
        if extraction_input.metadata.get(key)
    ]
    if metadata_lines:
        parts.append("Metadata:\n" + "\n".join(metadata_lines))

    parts.append("\n---\n")
    parts.append("Content to Extract:\n")
    parts.append(extraction_input.content)

    return "\n".join(parts)


class ContentExtractor:
    """Extract structured brewery information from content using Claude."""

    def __init__(
        self,
        client: Optional[anthropic.Anthropic] = None,
        config: Optional[ExtractionConfig] = None,
    ):
        app_config = get_config()
        self.config = config or app_config.extraction

        if client is None:
            api_key = app_config.api_keys.anthropic or os.environ.get("ANTHROPIC_API_KEY")
            if api_key:
                client = anthropic.Anthropic(api_key=api_key, max_retries=0)
            else:
                logger.warning("Anthropic API key not configured, LLM extraction disabled")

        self.client = client

    def extract(self, extraction_input: ExtractionInput) -> ExtractionResult:
        """Extract structured information from content.

        Transient provider failures raise ``ProviderUnavailable`` so the
        calling stage can retry. Every other failure comes back as an
        unsuccessful result.
        """
        if self.client is None:
            return ExtractionResult(success=False, error="Anthropic client not configured")

        content = extraction_input.content or ""
        if len(content) > self.config.max_content_length:
            content = content[: self.config.max_content_length] + "\n[Content truncated...]"
            extraction_input = ExtractionInput(
                content=content,
                source_type=extraction_input.source_type,
                brewery_name=extraction_input.brewery_name,
                metadata=extraction_input.metadata,
            )

        logger.debug(
            f"Calling Claude for extraction (model={self.config.model}, "
            f"source={extraction_input.source_type}, length={len(content)})"
        )

        try:
            response = self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=SYSTEM_PROMPT,
                tools=[EXTRACTION_TOOL],
                tool_choice={"type": "tool", "name": EXTRACTION_TOOL["name"]},
                messages=[{"role": "user", "content": build_prompt(extraction_input)}],
                timeout=self.config.request_timeout,
            )
        except (
            anthropic.APIConnectionError,
            anthropic.RateLimitError,
            anthropic.InternalServerError,
        ) as e:
            logger.warning(f"Claude unavailable: {e}")
            raise ProviderUnavailable(f"Claude unavailable: {e}") from e
        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e} (source: {extraction_input.source_type})")
            return ExtractionResult(success=False, error=str(e))

        tokens_used = None
        if getattr(response, "usage", None) is not None:
            tokens_used = response.usage.input_tokens + response.usage.output_tokens

        payload = None
        for block in response.content:
            if block.type == "tool_use" and block.name == EXTRACTION_TOOL["name"]:
                payload = block.input
                break

        if payload is None:
            logger.warning("No tool use in Claude response")
            return ExtractionResult(
                success=False,
                error="No structured output in response",
                tokens_used=tokens_used,
            )

        try:
            data = validate_extraction(payload)
        except SchemaValidationFailed as e:
            logger.warning(str(e))
            return ExtractionResult(success=False, error=str(e), tokens_used=tokens_used)

        if data.confidence < self.config.low_confidence_threshold:
            logger.warning(
                f"Low confidence extraction (confidence={data.confidence:.2f}, "
                f"contentType={data.content_type})"
            )

        return ExtractionResult(success=True, data=data, tokens_used=tokens_used)
