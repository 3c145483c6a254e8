"""
Main Pipeline System

Wires the extractor, normalizer, indexer, retriever and answer composer into
one object shared by the HTTP server, the Kafka listener and the CLI.

Ingestion path: extract -> normalize -> embed -> upsert
Query path:     embed query -> nearest neighbours -> cited answer
"""

import time
import logging
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from .config import Config, get_config
from .embeddings.ollama_service import OllamaEmbeddingService
from .errors import NewsAgentError
from .generation.chat_service import OllamaChatService
from .ingestion.article_extractor import ArticleExtractor
from .ingestion.normalizer import ArticleNormalizer
from .models import AnswerWithSources, Article
from .query.classifier import UrlIngestRequest, classify_request
from .query.rag_service import RAGService
from .query.retriever import Retriever
from .storage.indexer import VectorIndexer, article_id
from .storage.vector_store import VectorStore

logger = logging.getLogger(__name__)


class NewsAgent:
    """
    Main pipeline system that integrates all components.

    Every collaborator can be injected; anything left as None is built from
    the configuration.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        extractor: Optional[ArticleExtractor] = None,
        chat_service: Optional[OllamaChatService] = None,
        embedding_service: Optional[OllamaEmbeddingService] = None,
        vector_store: Optional[VectorStore] = None,
        log_level: int = logging.INFO
    ):
        """
        Initialize the news agent.

        Args:
            config: Configuration (default: global config)
            extractor: ArticleExtractor instance
            chat_service: Generation service
            embedding_service: Embedding service
            vector_store: Vector store
            log_level: Logging level for the pipeline logger
        """
        self._setup_logging(log_level)
        self.config = config or get_config()

        self.extractor = extractor or ArticleExtractor(
            timeout=self.config.article_timeout,
            max_retries=self.config.article_max_retries,
            content_mode=self.config.article_content_mode
        )
        self.chat_service = chat_service or OllamaChatService(
            model=self.config.chat_model,
            temperature=self.config.chat_temperature,
            base_url=self.config.ollama_base_url
        )
        self.embedding_service = embedding_service or OllamaEmbeddingService(
            model=self.config.embedding_model,
            base_url=self.config.ollama_base_url,
            dimension=self.config.embedding_dimension,
            timeout=self.config.ollama_timeout
        )
        self.vector_store = vector_store or VectorStore(
            index_path=self.config.faiss_index_path,
            dimension=self.config.embedding_dimension
        )

        self.normalizer = ArticleNormalizer(
            self.chat_service,
            max_content_chars=self.config.max_content_chars
        )
        self.indexer = VectorIndexer(
            self.embedding_service,
            self.vector_store,
            auto_persist=self.config.auto_persist
        )
        self.retriever = Retriever(
            self.embedding_service,
            self.vector_store,
            top_k=self.config.top_k_default
        )
        self.rag_service = RAGService(
            self.chat_service,
            retriever=self.retriever,
            top_k=self.config.top_k_default
        )

        self.logger.info("NewsAgent initialized successfully")

    def _setup_logging(self, log_level: int):
        """Configure logging for the system."""
        self.logger = logger
        self.logger.setLevel(log_level)

        if not self.logger.handlers and not logging.getLogger().handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def process_url(self, url: str) -> Article:
        """
        Fetch and normalize an article without storing it.

        Raises:
            FetchError, ModelInvocationError, MalformedModelOutput
        """
        try:
            raw = self.extractor.extract(url)
            return self.normalizer.normalize(raw)
        except NewsAgentError as e:
            self.logger.error(f"Failed to process article {url}: {e}")
            raise

    def ingest_article(self, url: str) -> Article:
        """
        Ingest a single article: extract -> normalize -> embed -> upsert.

        Re-ingesting a URL overwrites its previous record.

        Args:
            url: Article URL

        Returns:
            The normalized article that was stored

        Raises:
            NewsAgentError: Any stage failure, unchanged
        """
        start_time = time.time()
        self.logger.info(f"Ingesting article: {url}")

        article = self.process_url(url)
        self.indexer.index_article(article)

        self.logger.info(
            f"Successfully ingested article: {article.title} ({time.time() - start_time:.2f}s)"
        )
        return article

    def ingest_batch(
        self,
        urls: List[str],
        delay: float = 1.0,
        show_progress: bool = True
    ) -> Dict[str, Any]:
        """
        Ingest multiple articles one after another.

        A failing URL is recorded and the batch continues.

        Args:
            urls: List of article URLs
            delay: Delay between requests (seconds)
            show_progress: Show progress bar

        Returns:
            Dictionary with total, successful, failed, processing_time and
            per-URL details
        """
        start_time = time.time()
        results = []

        iterator = tqdm(urls, desc="Ingesting articles") if show_progress else urls

        for i, url in enumerate(iterator):
            try:
                article = self.ingest_article(url)
                results.append({
                    'success': True,
                    'url': url,
                    'article_id': article_id(url),
                    'title': article.title
                })
            except NewsAgentError as e:
                results.append({'success': False, 'url': url, 'error': str(e)})

            # Delay between requests (except for last one)
            if delay > 0 and i < len(urls) - 1:
                time.sleep(delay)

        successful = sum(1 for r in results if r['success'])

        return {
            'total': len(urls),
            'successful': successful,
            'failed': len(results) - successful,
            'processing_time': time.time() - start_time,
            'details': results
        }

    def ingest_from_file(
        self,
        file_path: str,
        delay: float = 1.0,
        show_progress: bool = True
    ) -> Dict[str, Any]:
        """
        Ingest articles from a file containing URLs (one per line).

        Blank lines and lines starting with '#' are skipped.
        """
        urls = []
        with open(file_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    urls.append(line)

        self.logger.info(f"Loaded {len(urls)} URLs from {file_path}")

        return self.ingest_batch(urls, delay=delay, show_progress=show_progress)

    def search(self, query: str, top_k: Optional[int] = None) -> List[Article]:
        """Return the stored articles nearest to a query."""
        return self.retriever.search(query, top_k=top_k)

    def ask(self, query: str, top_k: Optional[int] = None) -> AnswerWithSources:
        """Answer a free-text query from stored articles, with cited sources."""
        try:
            return self.rag_service.query(query, top_k=top_k)
        except NewsAgentError as e:
            self.logger.error(f"Error answering query {query!r}: {e}")
            raise

    def summarize_url(self, url: str, store: Optional[bool] = None) -> AnswerWithSources:
        """
        Summarize a linked article.

        Args:
            url: Article URL
            store: Also ingest the article (default: config.store_linked_articles)

        Returns:
            3-4 sentence summary with the article as its single source
        """
        if store is None:
            store = self.config.store_linked_articles

        article = self.process_url(url)
        if store:
            self.indexer.index_article(article)

        try:
            return self.rag_service.summarize_article(article)
        except NewsAgentError as e:
            self.logger.error(f"Error summarizing {url}: {e}")
            raise

    def handle_query(self, text: Any) -> AnswerWithSources:
        """
        Classify a query and dispatch it.

        A query containing a URL summarizes that article; anything else is
        answered from the vector store.

        Raises:
            ValidationError: If the query is missing or not a string
        """
        request = classify_request(text)
        if isinstance(request, UrlIngestRequest):
            return self.summarize_url(request.url)
        return self.ask(request.query)

    def get_stats(self) -> Dict[str, Any]:
        """Get system statistics."""
        return {
            'vector_store_stats': self.vector_store.get_stats(),
            'cache_stats': self.embedding_service.get_cache_stats(),
            'chat_model': self.config.chat_model,
            'embedding_model': self.config.embedding_model
        }
