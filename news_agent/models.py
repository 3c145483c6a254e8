"""
Data Models

Article records exchanged between the extractor, normalizer, vector indexer,
retriever and answer composer.
"""

import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Article(BaseModel):
    """
    A normalized news article.

    Fields are optional because articles mapped back from vector-store
    metadata may be only partially populated.
    """

    title: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None
    date: Optional[str] = None


class ArticlePayload(Article):
    """Strict schema for the JSON object the normalizer expects from the model."""

    model_config = ConfigDict(extra='forbid')

    title: str = Field(min_length=1)
    content: str
    url: str
    date: str

    @field_validator('date')
    @classmethod
    def check_iso_date(cls, value: str) -> str:
        # Raises ValueError for anything that is not YYYY-MM-DD
        return datetime.date.fromisoformat(value.strip()).isoformat()


class RawArticle(BaseModel):
    """Title and content as scraped from the page, before normalization."""

    url: str
    title: str = ""
    content: str = ""


class AnswerWithSources(BaseModel):
    """Generated answer plus the articles it cites."""

    answer: str
    sources: List[Article] = Field(default_factory=list)
