"""
Article Extractor Module

Fetches a news article over HTTP and strips it down to a raw title and content.
"""

import time
import logging
from typing import Optional
from urllib.parse import urlparse

import requests

from .parser import HTMLParser
from ..errors import FetchError
from ..models import RawArticle

logger = logging.getLogger(__name__)

TEXTUAL_CONTENT_TYPES = ('text/', 'application/xhtml', 'application/xml')


class ArticleExtractor:
    """
    Extracts a raw article from a news URL.

    Features:
    - URL validation
    - Retry with exponential backoff on timeouts and connection errors
    - User agent rotation
    - Paragraph or whole-body content extraction
    """

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        content_mode: str = 'paragraphs',
        session: Optional[requests.Session] = None,
        parser: Optional[HTMLParser] = None
    ):
        """
        Initialize the article extractor.

        Args:
            timeout: Request timeout in seconds (default: 30)
            max_retries: Maximum attempts for transient network failures (default: 3)
            content_mode: 'paragraphs' or 'body' (default: 'paragraphs')
            session: Optional requests session (default: new session)
            parser: Optional HTML parser (default: HTMLParser())
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.content_mode = content_mode
        self.session = session or requests.Session()
        self.parser = parser or HTMLParser()

        # User agents for rotation
        self.user_agents = [
            'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
            'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
            'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
        ]
        self.current_user_agent_idx = 0

    def _get_user_agent(self) -> str:
        """Get next user agent from rotation."""
        user_agent = self.user_agents[self.current_user_agent_idx]
        self.current_user_agent_idx = (self.current_user_agent_idx + 1) % len(self.user_agents)
        return user_agent

    def _validate_url(self, url: str) -> bool:
        """
        Validate URL format.

        Args:
            url: URL to validate

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(url, str):
            return False
        result = urlparse(url.strip())
        return result.scheme in ('http', 'https') and bool(result.netloc)

    def fetch_html(self, url: str) -> str:
        """
        Fetch the HTML document behind a URL.

        Args:
            url: Article URL

        Returns:
            Response body as text

        Raises:
            FetchError: If the URL is invalid, the response is not 2xx,
                the content is not textual, or all attempts fail
        """
        if not self._validate_url(url):
            logger.error(f"Invalid URL: {url}")
            raise FetchError(f"Invalid URL: {url}")

        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = self.session.get(
                    url,
                    headers={'User-Agent': self._get_user_agent()},
                    timeout=self.timeout
                )
                response.raise_for_status()

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_error = e
                logger.warning(f"Network error on attempt {attempt + 1}/{self.max_retries} for {url}: {e}")
                if attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt  # Exponential backoff
                    logger.info(f"Retrying in {wait_time} seconds...")
                    time.sleep(wait_time)
                continue

            except requests.exceptions.RequestException as e:
                logger.error(f"Failed to fetch {url}: {e}")
                raise FetchError(f"Failed to fetch {url}: {e}") from e

            content_type = response.headers.get('Content-Type', '')
            if content_type and not content_type.lower().startswith(TEXTUAL_CONTENT_TYPES):
                logger.error(f"Non-textual content from {url}: {content_type}")
                raise FetchError(f"Expected textual content from {url}, got '{content_type}'")

            html = response.text
            if not html or not html.strip():
                logger.error(f"Empty response body from {url}")
                raise FetchError(f"Empty response body from {url}")

            return html

        logger.error(f"Failed to fetch {url} after {self.max_retries} attempts")
        raise FetchError(
            f"Failed to fetch {url} after {self.max_retries} attempts: {last_error}"
        ) from last_error

    def extract(self, url: str) -> RawArticle:
        """
        Fetch a URL and extract its raw title and content.

        Args:
            url: Article URL

        Returns:
            RawArticle with trimmed title and content

        Raises:
            FetchError: If the page cannot be fetched
        """
        logger.info(f"Extracting article from: {url}")

        html = self.fetch_html(url)
        soup = self.parser.parse_html(html)

        title = self.parser.extract_title(soup)
        content = self.parser.extract_content(soup, mode=self.content_mode)

        logger.info(f"Extracted article from {url} (title: {title[:60]!r}, length: {len(content)} chars)")
        return RawArticle(url=url, title=title.strip(), content=content.strip())
