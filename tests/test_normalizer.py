"""
Test Suite for Article Normalizer

Tests cover:
- Prompt construction and content truncation
- Strict JSON parsing of model replies
- Schema validation failures reported as MalformedModelOutput
"""

import json
import pytest
from unittest.mock import Mock

from news_agent.errors import MalformedModelOutput, ModelInvocationError
from news_agent.generation.chat_service import OllamaChatService
from news_agent.ingestion.normalizer import ArticleNormalizer, parse_article_json
from news_agent.models import RawArticle


URL = "https://example.com/news/1"

VALID_REPLY = json.dumps({
    "title": "Markets Rally",
    "content": "Stocks rose sharply on Tuesday.",
    "url": URL,
    "date": "2024-03-05"
})


def make_normalizer(reply=VALID_REPLY, max_content_chars=10000):
    chat_service = Mock(spec=OllamaChatService)
    chat_service.generate.return_value = reply
    return ArticleNormalizer(chat_service, max_content_chars=max_content_chars), chat_service


class TestParseArticleJson:
    """Test strict parsing of model output."""

    def test_plain_json_object(self):
        payload = parse_article_json(VALID_REPLY)

        assert payload.title == "Markets Rally"
        assert payload.date == "2024-03-05"

    def test_fenced_json_object(self):
        payload = parse_article_json(f"```json\n{VALID_REPLY}\n```")
        assert payload.url == URL

    def test_apology_is_malformed(self):
        """A reply with no JSON object fails cleanly."""
        with pytest.raises(MalformedModelOutput) as exc_info:
            parse_article_json("Sorry, I can't help.")
        assert exc_info.value.raw_output == "Sorry, I can't help."

    def test_prose_around_json_is_tolerated(self):
        payload = parse_article_json(f"Here is the JSON you asked for: {VALID_REPLY} Hope this helps!")
        assert payload.title == "Markets Rally"

    def test_leading_prose_before_json(self):
        payload = parse_article_json(f"Here is the cleaned article:\n{VALID_REPLY}")
        assert payload.url == URL

    def test_prose_with_broken_json_is_malformed(self):
        with pytest.raises(MalformedModelOutput, match="not valid JSON"):
            parse_article_json("Here you go: {\"title\": \"Markets Rally\",} done")

    def test_prose_around_invalid_schema_is_malformed(self):
        with pytest.raises(MalformedModelOutput, match="schema"):
            parse_article_json("Sure! {\"title\": \"Markets Rally\"}")

    def test_empty_reply_is_malformed(self):
        with pytest.raises(MalformedModelOutput):
            parse_article_json("   ")

    def test_json_array_is_malformed(self):
        with pytest.raises(MalformedModelOutput, match="JSON object"):
            parse_article_json(f"[{VALID_REPLY}]")

    def test_missing_field_is_malformed(self):
        data = json.loads(VALID_REPLY)
        del data["date"]
        with pytest.raises(MalformedModelOutput, match="schema"):
            parse_article_json(json.dumps(data))

    def test_extra_field_is_malformed(self):
        data = json.loads(VALID_REPLY)
        data["author"] = "Jane Doe"
        with pytest.raises(MalformedModelOutput):
            parse_article_json(json.dumps(data))

    def test_bad_date_is_malformed(self):
        data = json.loads(VALID_REPLY)
        data["date"] = "last Tuesday"
        with pytest.raises(MalformedModelOutput):
            parse_article_json(json.dumps(data))


class TestArticleNormalizer:
    """Test the normalization flow."""

    def test_normalize_returns_article(self):
        normalizer, chat_service = make_normalizer()

        article = normalizer.normalize(RawArticle(url=URL, title="Raw", content="Raw content"))

        assert article.title == "Markets Rally"
        assert article.content == "Stocks rose sharply on Tuesday."
        assert article.url == URL
        assert article.date == "2024-03-05"
        chat_service.generate.assert_called_once()

    def test_prompt_contains_raw_fields(self):
        normalizer, chat_service = make_normalizer()

        normalizer.normalize(RawArticle(url=URL, title="Raw Title", content="Raw body"))

        prompt = chat_service.generate.call_args[0][0]
        assert "Raw Title" in prompt
        assert "Raw body" in prompt
        assert URL in prompt
        assert '"title"' in prompt and '"date"' in prompt

    def test_content_truncated_before_prompting(self):
        normalizer, chat_service = make_normalizer(max_content_chars=50)

        normalizer.normalize(RawArticle(url=URL, title="T", content="a" * 40 + "b" * 100))

        prompt = chat_service.generate.call_args[0][0]
        assert "a" * 40 + "b" * 10 in prompt
        assert "b" * 11 not in prompt

    def test_reply_with_preamble_is_normalized(self):
        normalizer, _ = make_normalizer(reply=f"Here is the cleaned article:\n\n{VALID_REPLY}\n")

        article = normalizer.normalize(RawArticle(url=URL, title="Raw", content="Raw content"))

        assert article.title == "Markets Rally"

    def test_fetched_url_wins_over_model_url(self):
        reply = json.dumps({**json.loads(VALID_REPLY), "url": "https://example.com/other"})
        normalizer, _ = make_normalizer(reply=reply)

        article = normalizer.normalize(RawArticle(url=URL, title="T", content="C"))
        assert article.url == URL

    def test_malformed_reply_raises(self):
        normalizer, _ = make_normalizer(reply="Sorry, I can't help.")

        with pytest.raises(MalformedModelOutput):
            normalizer.normalize(RawArticle(url=URL, title="T", content="C"))

    def test_model_failure_propagates(self):
        normalizer, chat_service = make_normalizer()
        chat_service.generate.side_effect = ModelInvocationError("model down")

        with pytest.raises(ModelInvocationError):
            normalizer.normalize(RawArticle(url=URL, title="T", content="C"))
        assert chat_service.generate.call_count == 1
