"""
Content normalizer: raw HTML to clean, LLM-ready page text.

Selector-based on BeautifulSoup so the result is deterministic for a given
page. Footers are dropped like any other boilerplate unless they carry
contact data, in which case their text is kept and appended after the main
content (footers are often the only place a small business lists its phone
or street address).
"""

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

from .deterministic import DeterministicExtractor

# Always boilerplate
REMOVE_SELECTORS = [
    "script",
    "style",
    "noscript",
    "template",
    "iframe",
    "svg",
    "nav",
    "aside",
    ".ads",
    ".advertisement",
    ".ad-container",
    "[id^=google_ads]",
    ".sidebar",
    ".cookie-banner",
]

FOOTER_SELECTORS = ["footer", "[role=contentinfo]", "#footer", ".footer"]

# Tried in order; the first non-empty match is the main content
MAIN_CONTENT_SELECTORS = [
    "main",
    "article",
    "[role=main]",
    ".content",
    ".main-content",
    ".post-content",
    ".entry-content",
    "#content",
    "#main",
]

# Stripped only when falling back to <body>
BODY_FALLBACK_REMOVE = [".navigation", ".menu", ".navbar", "header"]


@dataclass
class NormalizedContent:
    """Normalized page text plus any footer text that carried contact data."""

    main_text: str
    footer_contact_text: Optional[str] = None

    @property
    def full_text(self) -> str:
        if self.footer_contact_text:
            if self.main_text:
                return f"{self.main_text}\n\n{self.footer_contact_text}"
            return self.footer_contact_text
        return self.main_text

    def __len__(self) -> int:
        return len(self.full_text)


def normalize_text(text: str) -> str:
    """
    Collapse whitespace runs within lines and runs of blank lines.

    Used directly for reader-proxy output (already text/markdown).
    """
    if not text:
        return ""
    lines = [re.sub(r"[ \t\r\f\v\u00a0]+", " ", line).strip() for line in text.splitlines()]
    collapsed = []
    for line in lines:
        if not line and (not collapsed or not collapsed[-1]):
            continue
        collapsed.append(line)
    return "\n".join(collapsed).strip()


def _element_text(element) -> str:
    return normalize_text(element.get_text("\n"))


def _remove(root, selectors) -> None:
    for selector in selectors:
        for element in root.select(selector):
            # Nested matches are already gone with their ancestor
            if not element.decomposed:
                element.decompose()


class ContentNormalizer:
    """
    Strip boilerplate from HTML and return main text plus preserved footer contact text.
    """

    def __init__(self, contact_detector: Optional[DeterministicExtractor] = None):
        self.contact_detector = contact_detector or DeterministicExtractor()

    def normalize(self, raw_html: str) -> NormalizedContent:
        """
        Normalize one HTML document.

        Args:
            raw_html: Page HTML (or plain text, which passes through)

        Returns:
            NormalizedContent with whitespace-collapsed text
        """
        if not raw_html or not raw_html.strip():
            return NormalizedContent(main_text="")

        if "<" not in raw_html:
            return NormalizedContent(main_text=normalize_text(raw_html))

        soup = BeautifulSoup(raw_html, "html.parser")

        _remove(soup, REMOVE_SELECTORS)

        footer_contact_text = self._take_footers(soup)
        main_text = self._main_text(soup)

        return NormalizedContent(main_text=main_text, footer_contact_text=footer_contact_text)

    def _take_footers(self, soup: BeautifulSoup) -> Optional[str]:
        """Remove footer elements, keeping the text of those with contact signals."""
        kept = []
        for selector in FOOTER_SELECTORS:
            for element in soup.select(selector):
                if element.decomposed:
                    continue
                text = _element_text(element)
                if text and self.contact_detector.has_contact_signal(text) and text not in kept:
                    kept.append(text)
                element.decompose()
        return "\n".join(kept) if kept else None

    def _main_text(self, soup: BeautifulSoup) -> str:
        for selector in MAIN_CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element is not None:
                text = _element_text(element)
                if text:
                    return text

        body = soup.body or soup
        _remove(body, BODY_FALLBACK_REMOVE)
        return _element_text(body)


_default_normalizer = ContentNormalizer()


def normalize(raw_html: str) -> NormalizedContent:
    """Module-level convenience wrapper around ContentNormalizer.normalize."""
    return _default_normalizer.normalize(raw_html)
