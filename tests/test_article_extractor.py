"""
Test Suite for Article Extractor and HTML Parser

Tests cover:
- URL validation
- Title and content extraction
- Fetch error handling
- Retry with backoff on network errors
"""

import pytest
import requests
from unittest.mock import Mock, patch

from news_agent.errors import FetchError
from news_agent.ingestion.article_extractor import ArticleExtractor
from news_agent.ingestion.parser import HTMLParser


SAMPLE_HTML = """
<html>
  <head><title>Site Title | News</title><script>var x = 1;</script></head>
  <body>
    <nav>Home  About</nav>
    <h1>  Markets Rally on Rate News </h1>
    <h1>Second heading</h1>
    <p> Stocks rose sharply on Tuesday. </p>
    <p></p>
    <p>Analysts expect further gains.</p>
  </body>
</html>
"""


def make_response(text=SAMPLE_HTML, content_type='text/html; charset=utf-8', status=200):
    """Build a mock requests.Response."""
    response = Mock(spec=requests.Response)
    response.text = text
    response.headers = {'Content-Type': content_type}
    response.status_code = status
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} Error")
    else:
        response.raise_for_status.return_value = None
    return response


def make_extractor(response=None, **kwargs):
    session = Mock(spec=requests.Session)
    if response is not None:
        session.get.return_value = response
    return ArticleExtractor(session=session, **kwargs), session


class TestHTMLParser:
    """Test raw title and content extraction."""

    def test_title_uses_first_h1(self):
        parser = HTMLParser()
        soup = parser.parse_html(SAMPLE_HTML)

        assert parser.extract_title(soup) == "Markets Rally on Rate News"

    def test_title_falls_back_to_document_title(self):
        parser = HTMLParser()
        soup = parser.parse_html("<html><head><title>Only Title</title></head><body><p>x</p></body></html>")

        assert parser.extract_title(soup) == "Only Title"

    def test_title_empty_when_missing(self):
        parser = HTMLParser()
        soup = parser.parse_html("<p>No headings</p>")

        assert parser.extract_title(soup) == ""

    def test_paragraphs_joined_with_blank_lines(self):
        parser = HTMLParser()
        soup = parser.parse_html(SAMPLE_HTML)

        content = parser.extract_content(soup)
        assert content == "Stocks rose sharply on Tuesday.\n\nAnalysts expect further gains."

    def test_body_mode_collapses_whitespace(self):
        parser = HTMLParser()
        soup = parser.parse_html(SAMPLE_HTML)

        content = parser.extract_content(soup, mode='body')
        assert "  " not in content
        assert "\n" not in content
        assert "var x" not in content
        assert content.startswith("Home About")
        assert "Analysts expect further gains." in content

    def test_unknown_mode_rejected(self):
        parser = HTMLParser()
        with pytest.raises(ValueError):
            parser.extract_content(parser.parse_html(SAMPLE_HTML), mode='summary')


class TestURLValidation:
    """Test URL validation functionality."""

    def test_valid_urls(self):
        extractor, _ = make_extractor()

        for url in ["https://example.com/news/1", "http://www.example.com/news"]:
            assert extractor._validate_url(url), f"Should accept valid URL: {url}"

    def test_invalid_urls(self):
        extractor, _ = make_extractor()

        for url in ["not-a-url", "://no-scheme.com", "", "   ", "ftp://example.com/file", None]:
            assert not extractor._validate_url(url), f"Should reject invalid URL: {url}"

    def test_invalid_url_raises_fetch_error(self):
        extractor, session = make_extractor()

        with pytest.raises(FetchError):
            extractor.extract("not-a-url")
        session.get.assert_not_called()


class TestExtraction:
    """Test fetching and extracting articles."""

    def test_extract_returns_raw_article(self):
        extractor, session = make_extractor(make_response())

        raw = extractor.extract("https://example.com/news/1")

        assert raw.url == "https://example.com/news/1"
        assert raw.title == "Markets Rally on Rate News"
        assert raw.content.startswith("Stocks rose sharply")
        call_kwargs = session.get.call_args[1]
        assert call_kwargs['timeout'] == 30
        assert 'User-Agent' in call_kwargs['headers']

    def test_body_content_mode(self):
        extractor, _ = make_extractor(make_response(), content_mode='body')

        raw = extractor.extract("https://example.com/news/1")
        assert "Home About" in raw.content

    def test_http_error_raises_fetch_error(self):
        extractor, session = make_extractor(make_response(status=404))

        with pytest.raises(FetchError):
            extractor.extract("https://example.com/missing")
        assert session.get.call_count == 1

    def test_non_textual_content_raises_fetch_error(self):
        extractor, _ = make_extractor(make_response(text="%PDF-1.4", content_type='application/pdf'))

        with pytest.raises(FetchError, match="textual"):
            extractor.extract("https://example.com/report.pdf")

    def test_empty_body_raises_fetch_error(self):
        extractor, _ = make_extractor(make_response(text="   "))

        with pytest.raises(FetchError, match="Empty"):
            extractor.extract("https://example.com/empty")


class TestRetryLogic:
    """Test retry with exponential backoff."""

    @patch('news_agent.ingestion.article_extractor.time.sleep')
    def test_retries_connection_errors_then_succeeds(self, mock_sleep):
        extractor, session = make_extractor(max_retries=3)
        session.get.side_effect = [
            requests.exceptions.ConnectionError("reset"),
            requests.exceptions.Timeout("slow"),
            make_response()
        ]

        raw = extractor.extract("https://example.com/news/1")

        assert raw.title == "Markets Rally on Rate News"
        assert session.get.call_count == 3
        assert [c[0][0] for c in mock_sleep.call_args_list] == [1, 2]

    @patch('news_agent.ingestion.article_extractor.time.sleep')
    def test_gives_up_after_max_retries(self, mock_sleep):
        extractor, session = make_extractor(max_retries=2)
        session.get.side_effect = requests.exceptions.ConnectionError("down")

        with pytest.raises(FetchError, match="after 2 attempts"):
            extractor.extract("https://example.com/news/1")
        assert session.get.call_count == 2

    def test_user_agent_rotation(self):
        extractor, _ = make_extractor()

        agents = [extractor._get_user_agent() for _ in range(4)]
        assert agents[0] != agents[1]
        assert agents[0] == agents[3]
