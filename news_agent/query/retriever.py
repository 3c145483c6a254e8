"""
Retriever

Embeds a free-text query and maps the nearest stored records back to articles.
"""

import logging
from typing import List, Optional

import numpy as np

from ..embeddings.ollama_service import OllamaEmbeddingService
from ..errors import IndexOperationError
from ..models import Article
from ..storage.vector_store import VectorStore

logger = logging.getLogger(__name__)


class Retriever:
    """Top-K semantic search over stored articles."""

    def __init__(
        self,
        embedding_service: OllamaEmbeddingService,
        vector_store: VectorStore,
        top_k: int = 3
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.top_k = top_k

    def search(self, query: str, top_k: Optional[int] = None) -> List[Article]:
        """
        Retrieve the articles nearest to a query.

        No distance threshold is applied. Metadata fields that are absent come
        back as None rather than dropping the match.

        Args:
            query: Free-text query
            top_k: Number of results (default: self.top_k)

        Returns:
            At most top_k articles, nearest first

        Raises:
            ModelInvocationError: If embedding the query fails
            IndexOperationError: If the vector store query fails
        """
        k = top_k if top_k is not None else self.top_k

        query_embedding = self.embedding_service.generate_embedding(query)
        if isinstance(query_embedding, np.ndarray):
            query_embedding = query_embedding.tolist()

        try:
            matches = self.vector_store.query(
                query_embedding,
                top_k=k,
                include_metadata=True
            )
        except Exception as e:
            logger.error(f"Search failed: {e}")
            raise IndexOperationError(f"Vector store query failed: {e}") from e

        articles = []
        for match in matches[:k]:
            metadata = match.metadata or {}
            articles.append(Article(
                title=metadata.get('title'),
                content=metadata.get('content'),
                url=metadata.get('url'),
                date=metadata.get('date')
            ))

        logger.debug(f"Retrieved {len(articles)} articles for query: {query[:80]!r}")
        return articles
