"""
RAG Service for Question Answering with Cited Sources

Orchestrates the query path:
1. Context retrieval through the Retriever
2. Prompt construction with [Title](URL) source headers
3. LLM-based answer generation
4. Citation extraction from the generated markdown links

Also produces short single-article summaries for queries that link an article
directly.
"""

import re
import time
import logging
from typing import List, Optional

from ..generation.chat_service import OllamaChatService
from ..models import AnswerWithSources, Article
from .retriever import Retriever

logger = logging.getLogger(__name__)

CONTEXT_CONTENT_CHARS = 1000

# [label](url); labels may not contain ']' and urls end at whitespace or ')'
CITATION_PATTERN = re.compile(r'\[([^\]]+)\]\((https?://[^\s)]+)\)')


def extract_citations(answer: str, candidates: List[Article]) -> List[Article]:
    """
    Find the candidate articles cited in an answer.

    Matches every [label](url) pair, keeps the first occurrence of each URL,
    and returns the candidates whose url was cited, in citation order.
    Links to URLs outside the candidate set are ignored.

    Args:
        answer: Generated answer text
        candidates: Articles that were offered to the model

    Returns:
        Cited subset of candidates
    """
    by_url = {}
    for article in candidates:
        if article.url and article.url not in by_url:
            by_url[article.url] = article

    cited = []
    seen_urls = set()
    for _, url in CITATION_PATTERN.findall(answer or ''):
        if url in seen_urls or url not in by_url:
            continue
        seen_urls.add(url)
        cited.append(by_url[url])

    return cited


class RAGService:
    """
    Composes cited answers from retrieved articles.

    The returned sources are exactly the candidates the model linked in
    markdown form; an answer that paraphrases a source without linking it
    yields no source for it.
    """

    def __init__(
        self,
        chat_service: OllamaChatService,
        retriever: Optional[Retriever] = None,
        top_k: int = 3
    ):
        """
        Initialize the RAG service.

        Args:
            chat_service: Service used for answer generation
            retriever: Retriever used by query(); compose_answer() works without one
            top_k: Default number of articles to retrieve
        """
        self.chat_service = chat_service
        self.retriever = retriever
        self.top_k = top_k

    def _format_context(self, articles: List[Article]) -> str:
        """
        Format articles for inclusion in the prompt.

        Args:
            articles: Candidate articles

        Returns:
            One block per article: a [Title](URL) - Accessed <date> line
            followed by up to 1000 characters of content
        """
        if not articles:
            return ""

        formatted_parts = []
        for article in articles:
            formatted_parts.append(
                f"[{article.title}]({article.url}) - Accessed {article.date}\n"
                f"{(article.content or '')[:CONTEXT_CONTENT_CHARS]}"
            )

        return "\n\n".join(formatted_parts)

    def _build_prompt(self, query: str, context: str) -> str:
        """
        Build the complete prompt for the LLM.

        Args:
            query: User's query
            context: Formatted article context

        Returns:
            Complete prompt string
        """
        instructions = """You are a news assistant that answers questions using the articles provided below.

INSTRUCTIONS:
1. Answer the query concisely using the information in the articles
2. Cite every article you use inline in markdown form exactly as given, e.g. [Article Title](https://example.com/article)
3. End your answer with a "Sources:" heading followed by the list of every [Title](URL) you cited
4. If the articles do not contain relevant information, say so"""

        if context:
            context_text = f"ARTICLES:\n{context}"
        else:
            context_text = "ARTICLES: No relevant articles found."

        return f"""{instructions}

{context_text}

QUERY: {query}

ANSWER:"""

    def _build_summary_prompt(self, article: Article) -> str:
        return (
            "Summarize this article in 3-4 sentences:\n\n"
            f"Title: {article.title}\n\n{article.content}"
        )

    def compose_answer(self, query: str, articles: List[Article]) -> AnswerWithSources:
        """
        Generate a cited answer over a fixed set of candidate articles.

        Args:
            query: User's query
            articles: Candidate articles

        Returns:
            Answer plus the candidates it cited

        Raises:
            ModelInvocationError: If LLM generation fails
        """
        start_time = time.time()

        prompt = self._build_prompt(query, self._format_context(articles))
        answer = self.chat_service.generate(prompt)
        sources = extract_citations(answer, articles)

        logger.info(
            f"Answered query with {len(sources)}/{len(articles)} sources cited "
            f"in {time.time() - start_time:.2f}s"
        )
        return AnswerWithSources(answer=answer, sources=sources)

    def query(self, query: str, top_k: Optional[int] = None) -> AnswerWithSources:
        """
        Retrieve relevant articles and answer a query.

        Args:
            query: User's query
            top_k: Number of articles to retrieve (overrides default)

        Returns:
            Answer plus cited sources

        Raises:
            ValueError: If the query is empty or no retriever is configured
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")
        if self.retriever is None:
            raise ValueError("RAGService.query() requires a retriever")

        k = top_k if top_k is not None else self.top_k
        articles = self.retriever.search(query, top_k=k)
        return self.compose_answer(query, articles)

    def summarize_article(self, article: Article) -> AnswerWithSources:
        """
        Summarize a single article in 3-4 sentences.

        Args:
            article: Normalized article

        Returns:
            Summary with the article as its only source
        """
        answer = self.chat_service.generate(self._build_summary_prompt(article))
        return AnswerWithSources(answer=answer, sources=[article])
