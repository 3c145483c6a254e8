"""
HTML Parser

Reduces an HTML document to a raw article title and body text using BeautifulSoup4.
"""

from typing import List
from bs4 import BeautifulSoup


class HTMLParser:
    """Parses HTML content to extract a raw title and content."""

    def parse_html(self, html: str) -> BeautifulSoup:
        """
        Parse HTML content into BeautifulSoup object.

        Args:
            html: HTML content string

        Returns:
            BeautifulSoup object
        """
        return BeautifulSoup(html, 'html.parser')

    def extract_title(self, soup: BeautifulSoup) -> str:
        """
        Extract the article title.

        Uses the first <h1> heading, falling back to the document <title>.

        Args:
            soup: BeautifulSoup object

        Returns:
            Title text, or an empty string if neither element is present
        """
        heading = soup.find('h1')
        if heading:
            title = heading.get_text(strip=True)
            if title:
                return title

        title_tag = soup.find('title')
        if title_tag:
            return title_tag.get_text(strip=True)
        return ''

    def extract_paragraphs(self, soup: BeautifulSoup) -> List[str]:
        """
        Extract the trimmed text of every <p> element, skipping empty ones.

        Args:
            soup: BeautifulSoup object

        Returns:
            List of paragraph texts in document order
        """
        paragraphs = []
        for p in soup.find_all('p'):
            text = p.get_text().strip()
            if text:
                paragraphs.append(text)
        return paragraphs

    def extract_body_text(self, soup: BeautifulSoup) -> str:
        """
        Extract the whole body text with whitespace collapsed.

        Args:
            soup: BeautifulSoup object

        Returns:
            Body text on a single line
        """
        for tag in soup(['script', 'style', 'noscript']):
            tag.decompose()
        root = soup.body or soup
        return ' '.join(root.get_text(' ').split())

    def extract_content(self, soup: BeautifulSoup, mode: str = 'paragraphs') -> str:
        """
        Extract raw article content.

        Args:
            soup: BeautifulSoup object
            mode: 'paragraphs' joins <p> texts with blank lines,
                'body' returns the collapsed body text

        Returns:
            Raw content text
        """
        if mode == 'body':
            return self.extract_body_text(soup)
        if mode != 'paragraphs':
            raise ValueError(f"Unknown content mode: {mode}")
        return '\n\n'.join(self.extract_paragraphs(soup))
