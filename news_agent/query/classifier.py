"""
Request Classifier

Decides whether an inbound query or queue message refers to an article URL or
is a free-text search. Shared by the HTTP endpoint, the Kafka listener and the CLI.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..errors import ValidationError

URL_PATTERN = re.compile(r'https?://\S+')
TRAILING_PUNCTUATION = '.,;:!?\'")]}>'


@dataclass(frozen=True)
class UrlIngestRequest:
    """A request naming an article URL."""
    url: str
    query: str


@dataclass(frozen=True)
class SearchRequest:
    """A free-text search request."""
    query: str


Request = Union[UrlIngestRequest, SearchRequest]


def extract_url(text: str) -> Optional[str]:
    """
    Return the first http(s) URL in text, without trailing sentence punctuation.
    """
    match = URL_PATTERN.search(text)
    if not match:
        return None
    url = match.group(0).rstrip(TRAILING_PUNCTUATION)
    # A bare scheme is not a URL
    if url.endswith('://'):
        return None
    return url


def classify_request(text: Any) -> Request:
    """
    Classify a query string.

    Args:
        text: Raw query or message payload

    Returns:
        UrlIngestRequest if the text contains a URL, otherwise SearchRequest

    Raises:
        ValidationError: If text is not a non-empty string
    """
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Query is required and must be a string")

    query = text.strip()
    url = extract_url(query)
    if url:
        return UrlIngestRequest(url=url, query=query)
    return SearchRequest(query=query)
