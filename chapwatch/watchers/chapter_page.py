from typing import List
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .base import Extractor, CandidateItem
from ..errors import ExtractError
from ..utils.log import get_logger

logger = get_logger("chapwatch.chapter_page")

DEFAULT_LINK_SELECTOR = "div.chapter-card-desktop > a.chapter-link-desktop"
DEFAULT_TITLE_SELECTOR = ".chapter-title"
DEFAULT_NUMBER_SELECTOR = ".chapter-number"
DEFAULT_MAX_ITEMS = 15


# --------------------------------------------------------------------
# Chapter listing page
# --------------------------------------------------------------------
class ChapterPageExtractor(Extractor):
    """Reads chapter cards from a series page, newest first as listed."""

    name = "chapter_page"

    def __init__(
        self,
        link_selector: str = DEFAULT_LINK_SELECTOR,
        title_selector: str = DEFAULT_TITLE_SELECTOR,
        number_selector: str = DEFAULT_NUMBER_SELECTOR,
        max_items: int = DEFAULT_MAX_ITEMS,
    ):
        self.link_selector = link_selector
        self.title_selector = title_selector
        self.number_selector = number_selector
        self.max_items = max_items

    def extract(self, content: str, page_url: str) -> List[CandidateItem]:
        if not content or not content.strip():
            raise ExtractError(f"empty page content from {page_url}")

        soup = BeautifulSoup(content, "lxml")
        try:
            anchors = soup.select(self.link_selector, limit=self.max_items)
        except Exception as e:
            raise ExtractError(f"bad link selector {self.link_selector!r}: {e}") from e

        items: List[CandidateItem] = []
        for a in anchors:
            href = (a.get("href") or "").strip()
            if not href:
                logger.debug("Chapter card without href skipped: %s", a)
                continue
            title_node = a.select_one(self.title_selector) if self.title_selector else None
            number_node = a.select_one(self.number_selector) if self.number_selector else None
            title = title_node.get_text(" ", strip=True) if title_node else ""
            number = number_node.get_text(" ", strip=True) if number_node else None
            items.append(CandidateItem(url=urljoin(page_url, href), title=title, number=number, decode_entities=False))

        logger.debug("Extracted %d chapter card(s) from %s", len(items), page_url)
        return items
