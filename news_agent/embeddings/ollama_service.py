"""
Ollama Embedding Service

Generates text embeddings through Ollama's HTTP API, with connection
verification, dimension checks and an in-memory cache.
"""

import hashlib
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Optional

import numpy as np
import requests

from ..errors import ModelInvocationError

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics for cache performance tracking."""
    hits: int = 0
    misses: int = 0
    total_requests: int = 0
    cache_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        return self.hits / self.total_requests if self.total_requests > 0 else 0.0

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            **asdict(self),
            'hit_rate': self.hit_rate
        }


class OllamaEmbeddingService:
    """
    Service for generating embeddings using an Ollama embedding model.

    Each call embeds one piece of text; there is no batching across articles.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        dimension: int = 768,
        verify_dimensions: bool = True,
        timeout: int = 60,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the Ollama embedding service.

        Args:
            model: Ollama embedding model name (default: nomic-embed-text)
            base_url: Ollama base URL
            dimension: Expected embedding dimension
            verify_dimensions: Verify embedding dimensions match expected value
            timeout: Request timeout in seconds
            session: Optional requests session
        """
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.dimension = dimension
        self.verify_dimensions = verify_dimensions
        self.timeout = timeout
        self.session = session or requests.Session()

        self._memory_cache: Dict[str, np.ndarray] = {}
        self._cache_stats = CacheStats()

        logger.info(f"Initialized OllamaEmbeddingService with model: {self.model}")

    def _compute_hash(self, text: str) -> str:
        """Compute SHA-256 hash of text for caching."""
        return hashlib.sha256(text.encode('utf-8')).hexdigest()

    def verify_connection(self) -> bool:
        """
        Verify connection to Ollama service.

        Returns:
            True if connection successful

        Raises:
            ModelInvocationError: If unable to connect
        """
        try:
            response = self.session.get(
                f"{self.base_url}/api/tags",
                timeout=self.timeout
            )
            response.raise_for_status()
            logger.info("Successfully connected to Ollama service")
            return True

        except requests.exceptions.ConnectionError as e:
            raise ModelInvocationError(
                f"Unable to connect to Ollama at {self.base_url}. "
                "Please ensure Ollama is running (try: ollama serve)"
            ) from e
        except requests.exceptions.Timeout as e:
            raise ModelInvocationError(
                f"Connection to Ollama timed out after {self.timeout}s"
            ) from e
        except requests.exceptions.RequestException as e:
            raise ModelInvocationError(f"Error connecting to Ollama: {str(e)}") from e

    def _verify_embedding_dimensions(self, embedding: np.ndarray) -> None:
        """
        Verify embedding dimensions match expected value.

        Raises:
            ModelInvocationError: If dimensions don't match
        """
        if not self.verify_dimensions:
            return

        actual_dims = len(embedding)
        if actual_dims != self.dimension:
            raise ModelInvocationError(
                f"Expected {self.dimension} dimensions, got {actual_dims}. "
                f"Check that EMBEDDING_DIMENSION matches model '{self.model}'."
            )

    def generate_embedding(self, text: str, use_cache: bool = True) -> np.ndarray:
        """
        Generate embedding for a single text.

        Args:
            text: Input text
            use_cache: Whether to use caching

        Returns:
            Embedding vector as float32 numpy array

        Raises:
            ModelInvocationError: If the Ollama call fails or returns a bad payload
        """
        if not text or not text.strip():
            raise ModelInvocationError("Cannot embed empty text")

        self._cache_stats.total_requests += 1

        text_hash = self._compute_hash(text)
        if use_cache and text_hash in self._memory_cache:
            self._cache_stats.hits += 1
            logger.debug(f"Cache hit for text hash: {text_hash[:8]}...")
            return self._memory_cache[text_hash]

        self._cache_stats.misses += 1

        try:
            response = self.session.post(
                f"{self.base_url}/api/embeddings",
                json={
                    "model": self.model,
                    "prompt": text
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            embedding_list = response.json()['embedding']

        except requests.exceptions.ConnectionError as e:
            logger.error(f"Embedding request failed: {e}")
            raise ModelInvocationError(
                f"Unable to connect to Ollama at {self.base_url}. "
                "Please ensure Ollama is running."
            ) from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Embedding request timed out: {e}")
            raise ModelInvocationError(f"Request timed out after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            logger.error(f"Embedding request failed: {e}")
            raise ModelInvocationError(f"HTTP error from Ollama: {str(e)}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Embedding request failed: {e}")
            raise ModelInvocationError(f"Error generating embedding: {str(e)}") from e
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Unexpected embedding response: {e}")
            raise ModelInvocationError(f"Unexpected API response format: {e}") from e

        embedding = np.array(embedding_list, dtype=np.float32)
        self._verify_embedding_dimensions(embedding)

        if use_cache:
            self._memory_cache[text_hash] = embedding
            self._cache_stats.cache_size = len(self._memory_cache)

        return embedding

    def get_cache_stats(self) -> Dict:
        """Get cache performance statistics."""
        return self._cache_stats.to_dict()

    def clear_cache(self) -> None:
        """Clear the embedding cache."""
        self._memory_cache.clear()
        self._cache_stats = CacheStats()
        logger.info("Cleared memory cache")
