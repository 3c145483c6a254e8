"""
Vector Indexer

Embeds normalized articles and upserts them into the vector store under an id
derived from the article URL.
"""

import base64
import logging
from datetime import date
from typing import Any, Dict

from ..embeddings.ollama_service import OllamaEmbeddingService
from ..errors import IndexOperationError
from ..models import Article
from .vector_store import IndexedVector, VectorStore

logger = logging.getLogger(__name__)

ID_LENGTH = 64
EMBED_CONTENT_CHARS = 1000
# Keep each record well under typical per-record metadata ceilings (~40KB)
METADATA_TITLE_CHARS = 1000
METADATA_CONTENT_CHARS = 5000


def article_id(url: str) -> str:
    """
    Derive the vector-store id for an article URL.

    Base64 of the UTF-8 URL, truncated to 64 characters. Deterministic, but
    URLs sharing their first 48 bytes collide.
    """
    return base64.b64encode(url.encode('utf-8')).decode('ascii')[:ID_LENGTH]


def embedding_text(article: Article) -> str:
    """Text embedded for an article: title, newline, first 1000 content chars."""
    return f"{article.title or ''}\n{(article.content or '')[:EMBED_CONTENT_CHARS]}"


def build_metadata(article: Article) -> Dict[str, Any]:
    """Build the truncated metadata payload stored alongside the vector."""
    return {
        'title': (article.title or '')[:METADATA_TITLE_CHARS],
        'url': article.url,
        'date': article.date or date.today().isoformat(),
        'content': (article.content or '')[:METADATA_CONTENT_CHARS],
    }


class VectorIndexer:
    """Writes one vector per article, keyed by URL."""

    def __init__(
        self,
        embedding_service: OllamaEmbeddingService,
        vector_store: VectorStore,
        auto_persist: bool = False
    ):
        """
        Args:
            embedding_service: Service used to embed article text
            vector_store: Destination store
            auto_persist: Save the index to disk after each upsert
        """
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.auto_persist = auto_persist

    def index_article(self, article: Article) -> str:
        """
        Embed and upsert an article.

        Args:
            article: Normalized article with a url

        Returns:
            The record id written

        Raises:
            IndexOperationError: If the article has no url, or the embedding
                or upsert call fails
        """
        if not article.url:
            raise IndexOperationError("Cannot index an article without a url")

        record_id = article_id(article.url)

        try:
            embedding = self.embedding_service.generate_embedding(embedding_text(article))
        except Exception as e:
            logger.error(f"Error generating embedding for {article.url}: {e}")
            raise IndexOperationError(f"Failed to generate embedding for {article.url}: {e}") from e

        record = IndexedVector(
            id=record_id,
            values=[float(v) for v in embedding],
            metadata=build_metadata(article)
        )

        try:
            self.vector_store.upsert([record], persist=self.auto_persist)
        except Exception as e:
            logger.error(f"Error storing article {article.url}: {e}")
            raise IndexOperationError(f"Failed to upsert {article.url}: {e}") from e

        logger.info(f"Stored article: {article.title} ({record_id[:16]}...)")
        return record_id
