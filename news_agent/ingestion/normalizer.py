"""
Article Normalizer

Asks the chat model to clean a raw scraped article into a structured JSON record
and validates the reply against the article schema.
"""

import json
from datetime import date
import logging
import re

import pydantic

from ..errors import MalformedModelOutput
from ..generation.chat_service import OllamaChatService
from ..models import Article, ArticlePayload, RawArticle

logger = logging.getLogger(__name__)

# A reply may wrap the object in a single ```json ... ``` fence
_FENCE_PATTERN = re.compile(r'^```(?:json)?\s*\n?(.*?)\n?```$', re.DOTALL | re.IGNORECASE)

NORMALIZE_PROMPT = """Clean and structure this news article into JSON format.
Return ONLY a JSON object with exactly these four fields and nothing else:

{{
    "title": "Clean article title",
    "content": "Cleaned and concise article content",
    "url": "{url}",
    "date": "Publication date if present, otherwise {today}, in YYYY-MM-DD format"
}}

Title: {title}
Content: {content}
"""


def parse_article_json(text: str) -> ArticlePayload:
    """
    Parse a model reply into an ArticlePayload.

    The reply must contain one JSON object, optionally wrapped in a markdown code
    fence. Prose before or after the object is ignored.

    Args:
        text: Raw model reply

    Returns:
        Validated payload

    Raises:
        MalformedModelOutput: If the reply is not a JSON object matching the schema
    """
    if not text or not text.strip():
        raise MalformedModelOutput("Model returned an empty response", raw_output=text or "")

    body = text.strip()
    fenced = _FENCE_PATTERN.match(body)
    if fenced:
        body = fenced.group(1).strip()

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        # Prose before or after the object: retry on the outermost {...} span
        start, end = body.find('{'), body.rfind('}')
        if start == -1 or end <= start:
            raise MalformedModelOutput(f"Model response is not valid JSON: {e}", raw_output=text) from e
        try:
            data = json.loads(body[start:end + 1])
        except json.JSONDecodeError as span_error:
            raise MalformedModelOutput(
                f"Model response is not valid JSON: {span_error}", raw_output=text
            ) from span_error

    if not isinstance(data, dict):
        raise MalformedModelOutput(
            f"Expected a JSON object, got {type(data).__name__}", raw_output=text
        )

    try:
        return ArticlePayload.model_validate(data)
    except pydantic.ValidationError as e:
        raise MalformedModelOutput(f"Model response does not match article schema: {e}", raw_output=text) from e


class ArticleNormalizer:
    """Turns raw scraped text into a normalized Article with one model call."""

    def __init__(self, chat_service: OllamaChatService, max_content_chars: int = 10000):
        """
        Args:
            chat_service: Generation service used for the cleanup prompt
            max_content_chars: Raw content is clipped to this many characters
        """
        self.chat_service = chat_service
        self.max_content_chars = max_content_chars

    def build_prompt(self, raw: RawArticle, today: str) -> str:
        """Build the normalization prompt for a raw article."""
        return NORMALIZE_PROMPT.format(
            url=raw.url,
            today=today,
            title=raw.title,
            content=raw.content[:self.max_content_chars]
        )

    def normalize(self, raw: RawArticle) -> Article:
        """
        Normalize a raw article.

        Args:
            raw: Scraped title and content

        Returns:
            Article whose url is the fetched URL

        Raises:
            ModelInvocationError: If the model call fails
            MalformedModelOutput: If the reply does not match the schema
        """
        prompt = self.build_prompt(raw, today=date.today().isoformat())

        reply = self.chat_service.generate(prompt)

        try:
            payload = parse_article_json(reply)
        except MalformedModelOutput as e:
            logger.error(f"Error parsing model response for {raw.url}: {e}")
            raise

        if payload.url != raw.url:
            logger.debug(f"Model rewrote url {raw.url!r} as {payload.url!r}; keeping the fetched URL")

        return Article(
            title=payload.title.strip(),
            content=payload.content.strip(),
            url=raw.url,
            date=payload.date
        )
