"""
HTML -> markdown conversion.
Cleans the rendered document with BeautifulSoup, picks the article body
(or the whole body in detailed mode) and hands it to html2text.
"""

import re
import html2text
from bs4 import BeautifulSoup

from markcrawl.errors import ExtractionFailed
from markcrawl.core import setup_logger

logger = setup_logger("markcrawl.extractor")


class MarkdownExtractor:
    """Turns raw rendered HTML into a markdown artifact."""

    STRIP_TAGS = ['script', 'style', 'iframe', 'noscript', 'meta', 'link', 'template', 'svg']
    CHROME_TAGS = ['nav', 'footer', 'header', 'aside', 'form']
    ALLOWED_ATTRS = {'href', 'src', 'alt', 'title'}
    MAIN_PATTERNS = [
        {'name': 'main'},
        {'name': 'article'},
        {'name': 'div', 'attrs': {'role': 'main'}},
        {'name': 'div', 'id': re.compile(r'content|main|article', re.I)},
        {'name': 'div', 'class_': re.compile(r'content|main|article', re.I)},
    ]

    def __init__(self):
        self.converter = html2text.HTML2Text()
        self.converter.ignore_links = False
        self.converter.ignore_images = False
        self.converter.ignore_tables = False
        self.converter.body_width = 0

    def _clean(self, root, detailed):
        drop = list(self.STRIP_TAGS)
        if not detailed:
            drop += self.CHROME_TAGS
        for element in root.find_all(drop):
            element.decompose()
        for tag in root.find_all(True):
            for attr in list(tag.attrs):
                if attr not in self.ALLOWED_ATTRS:
                    del tag[attr]
        return root

    def _find_main_content(self, soup):
        for pattern in self.MAIN_PATTERNS:
            element = soup.find(**pattern)
            if element and element.get_text(strip=True):
                return element

        # Fallback: biggest text container
        containers = soup.find_all(['div', 'section'])
        if containers:
            return max(containers, key=lambda x: len(x.get_text(strip=True)))
        return soup.body or soup

    def extract(self, html: str, detailed: bool = False, url: str = "") -> str:
        """
        detailed=False keeps only the main article body; detailed=True keeps the
        whole document body (title included).
        Raises ExtractionFailed when no readable content is left.
        """
        if not html or not html.strip():
            raise ExtractionFailed(f"Empty document for {url}")

        soup = BeautifulSoup(html, 'html.parser')
        if detailed:
            root = soup.body or soup
        else:
            root = self._find_main_content(soup)

        if root is None:
            raise ExtractionFailed(f"No content found for {url}")

        cleaned = self._clean(root, detailed)
        if not cleaned.get_text(strip=True):
            raise ExtractionFailed(f"No readable content for {url}")

        body = str(cleaned)
        if detailed and soup.title and soup.title.string:
            body = f"<h1>{soup.title.string.strip()}</h1>" + body

        markdown = self.converter.handle(body).strip()
        if not markdown:
            raise ExtractionFailed(f"Empty markdown for {url}")

        logger.debug(f"[EXTRACT] {url}: {len(markdown)} chars (detailed={detailed})")
        return markdown
