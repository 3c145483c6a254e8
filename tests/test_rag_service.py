"""
Test Suite for RAG Service

Tests cover:
- Context formatting
- Prompt construction
- Citation extraction from markdown links
- Answer composition and single-article summaries
"""

import pytest
from unittest.mock import Mock

from news_agent.errors import ModelInvocationError
from news_agent.generation.chat_service import OllamaChatService
from news_agent.models import Article
from news_agent.query.rag_service import RAGService, extract_citations
from news_agent.query.retriever import Retriever


ARTICLES = [
    Article(title="AI in Healthcare", content="AI is transforming healthcare.",
            url="https://example.com/ai-health", date="2024-03-01"),
    Article(title="ML Diagnostics", content="Machine learning improves diagnostics.",
            url="https://example.com/ml-diag", date="2024-03-02"),
    Article(title="Robot Surgery", content="Robots assist surgeons.",
            url="https://example.com/robots", date="2024-03-03"),
]


def make_service(answer="An answer.", retriever=None):
    chat_service = Mock(spec=OllamaChatService)
    chat_service.generate.return_value = answer
    return RAGService(chat_service, retriever=retriever), chat_service


class TestExtractCitations:
    """Test regex-based citation extraction."""

    def test_only_cited_articles_returned(self):
        answer = "Diagnostics are improving [ML Diagnostics](https://example.com/ml-diag)."

        cited = extract_citations(answer, ARTICLES)

        assert [a.url for a in cited] == ["https://example.com/ml-diag"]

    def test_order_of_first_citation_and_dedup(self):
        answer = (
            "See [Robots](https://example.com/robots) and [AI](https://example.com/ai-health). "
            "Again [Robot Surgery](https://example.com/robots).\n\n"
            "Sources:\n- [Robot Surgery](https://example.com/robots)\n- [AI in Healthcare](https://example.com/ai-health)"
        )

        cited = extract_citations(answer, ARTICLES)

        assert [a.url for a in cited] == ["https://example.com/robots", "https://example.com/ai-health"]

    def test_unknown_urls_ignored(self):
        answer = "Per [Elsewhere](https://other.example.org/story) and [AI](https://example.com/ai-health)."

        cited = extract_citations(answer, ARTICLES)

        assert [a.url for a in cited] == ["https://example.com/ai-health"]

    def test_paraphrase_without_link_yields_no_sources(self):
        answer = "AI is transforming healthcare, according to AI in Healthcare."
        assert extract_citations(answer, ARTICLES) == []

    def test_is_idempotent_and_subset(self):
        answer = "[AI](https://example.com/ai-health) [ML](https://example.com/ml-diag)"

        first = extract_citations(answer, ARTICLES)
        second = extract_citations(answer, ARTICLES)

        assert first == second
        assert all(a in ARTICLES for a in first)

    def test_empty_inputs(self):
        assert extract_citations("", ARTICLES) == []
        assert extract_citations("[AI](https://example.com/ai-health)", []) == []

    def test_candidates_without_url_never_cited(self):
        candidates = [Article(title="No URL"), ARTICLES[0]]
        cited = extract_citations("[AI](https://example.com/ai-health)", candidates)
        assert cited == [ARTICLES[0]]


class TestPromptConstruction:
    """Test context and prompt formatting."""

    def test_format_context_headers(self):
        rag, _ = make_service()

        context = rag._format_context(ARTICLES[:2])

        assert "[AI in Healthcare](https://example.com/ai-health) - Accessed 2024-03-01" in context
        assert "AI is transforming healthcare." in context
        assert "[ML Diagnostics](https://example.com/ml-diag) - Accessed 2024-03-02" in context

    def test_format_context_truncates_content(self):
        rag, _ = make_service()
        article = Article(title="Long", content="x" * 1500, url="https://example.com/long", date="2024-01-01")

        context = rag._format_context([article])

        assert "x" * 1000 in context
        assert "x" * 1001 not in context

    def test_format_context_empty(self):
        rag, _ = make_service()
        assert rag._format_context([]) == ""

    def test_prompt_instructions(self):
        rag, _ = make_service()

        prompt = rag._build_prompt("What is new in AI?", "CONTEXT")

        assert "What is new in AI?" in prompt
        assert "CONTEXT" in prompt
        assert "Sources:" in prompt
        assert "[Article Title](https://example.com/article)" in prompt

    def test_prompt_without_context(self):
        rag, _ = make_service()
        assert "No relevant articles found" in rag._build_prompt("q", "")


class TestComposeAnswer:
    """Test answer generation."""

    def test_sources_are_cited_subset(self):
        """Three candidates, one cited: only the cited one is returned."""
        rag, chat_service = make_service(
            answer="Robots help [Robot Surgery](https://example.com/robots).\n\nSources:\n- [Robot Surgery](https://example.com/robots)"
        )

        result = rag.compose_answer("latest on topic X", ARTICLES)

        assert result.answer.startswith("Robots help")
        assert [a.url for a in result.sources] == ["https://example.com/robots"]
        chat_service.generate.assert_called_once()

    def test_model_failure_propagates(self):
        rag, chat_service = make_service()
        chat_service.generate.side_effect = ModelInvocationError("down")

        with pytest.raises(ModelInvocationError):
            rag.compose_answer("q", ARTICLES)

    def test_query_uses_retriever(self):
        retriever = Mock(spec=Retriever)
        retriever.search.return_value = ARTICLES
        rag, _ = make_service(answer="[AI](https://example.com/ai-health)", retriever=retriever)

        result = rag.query("AI news", top_k=2)

        retriever.search.assert_called_once_with("AI news", top_k=2)
        assert len(result.sources) == 1

    def test_query_default_top_k(self):
        retriever = Mock(spec=Retriever)
        retriever.search.return_value = []
        rag, _ = make_service(retriever=retriever)

        rag.query("AI news")

        assert retriever.search.call_args[1]['top_k'] == 3

    def test_query_rejects_empty(self):
        rag, _ = make_service(retriever=Mock(spec=Retriever))

        with pytest.raises(ValueError):
            rag.query("   ")

    def test_query_requires_retriever(self):
        rag, _ = make_service()

        with pytest.raises(ValueError, match="retriever"):
            rag.query("AI news")


class TestSummarizeArticle:
    """Test single-article summaries."""

    def test_summary_has_single_source(self):
        rag, chat_service = make_service(answer="A short summary.")

        result = rag.summarize_article(ARTICLES[0])

        assert result.answer == "A short summary."
        assert result.sources == [ARTICLES[0]]
        prompt = chat_service.generate.call_args[0][0]
        assert "3-4 sentences" in prompt
        assert ARTICLES[0].content in prompt
