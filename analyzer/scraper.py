"""
Website content acquisition with Playwright.

Loads the page in headless Chromium and extracts title, meta description,
headings, visible text and a few counters in a single page evaluation.
"""

import asyncio
import logging
import re
import time
from collections import Counter
from typing import Dict, List, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from analyzer.errors import AcquisitionFailure
from analyzer.models import Headings, ScrapedContent

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 50000

STOP_WORDS = frozenset(
    "the and for with this that from have will your our their about into through "
    "during before after above below between under again further then once".split()
)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

EXTRACT_JS = """
() => {
    const text = (document.body && document.body.innerText) || '';
    const meta = (name) => {
        const el = document.querySelector(`meta[name="${name}"], meta[property="${name}"]`);
        return (el && el.getAttribute('content')) || '';
    };
    const headings = (tag) => Array.from(document.querySelectorAll(tag))
        .map(h => (h.innerText || '').trim())
        .filter(Boolean);
    return {
        title: document.title || '',
        meta_description: meta('description') || meta('og:description'),
        text: text,
        h1: headings('h1'),
        h2: headings('h2'),
        h3: headings('h3'),
        image_count: document.querySelectorAll('img').length,
        link_count: document.querySelectorAll('a').length,
    };
}
"""


class ContentScraper(Protocol):
    async def scrape(self, url: str, deadline: float) -> ScrapedContent:
        ...


def _words(text: str, min_length: int) -> List[str]:
    return [w for w in re.sub(r"[^\w\s]", " ", text.lower()).split() if len(w) >= min_length]


def extract_keywords(text: str, headings: Dict[str, List[str]], limit: int = 20) -> List[str]:
    """
    Keywords from headings and frequent body terms, de-duplicated in order.

    H1 words (4+ chars) come first, then H2 words (5+ chars), then the most
    frequent body words (6+ chars, stop words excluded).
    """
    keywords: List[str] = []
    for heading in headings.get("h1", []):
        keywords.extend(_words(heading, 4))
    for heading in headings.get("h2", []):
        keywords.extend(_words(heading, 5))

    frequency = Counter(w for w in _words(text, 6) if w not in STOP_WORDS)
    keywords.extend(word for word, _ in frequency.most_common(limit))
    return list(dict.fromkeys(keywords))


class PlaywrightContentScraper:
    """Headless Chromium scraper; one browser per scrape"""

    def __init__(self, navigation_timeout: float = 30.0):
        self.navigation_timeout = navigation_timeout

    async def scrape(self, url: str, deadline: float) -> ScrapedContent:
        """
        Scrape `url` within `deadline` seconds.

        Raises:
            AcquisitionFailure: navigation error, empty page or deadline exceeded
        """
        try:
            return await asyncio.wait_for(self._scrape(url), timeout=deadline)
        except asyncio.TimeoutError as e:
            raise AcquisitionFailure(f"Content acquisition exceeded {deadline:g}s for {url}") from e
        except PlaywrightError as e:
            raise AcquisitionFailure(f"Failed to load {url}: {str(e)}") from e

    async def _scrape(self, url: str) -> ScrapedContent:
        started = time.monotonic()
        logger.info(f"🔍 Launching browser for: {url}")
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(
                headless=True,
                args=[
                    "--disable-dev-shm-usage",  # Prevents memory issues in Docker
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                    "--disable-gpu",
                ],
            )
            try:
                page = await browser.new_page(user_agent=USER_AGENT)
                await page.goto(
                    url, wait_until="domcontentloaded", timeout=self.navigation_timeout * 1000
                )
                raw = await page.evaluate(EXTRACT_JS)
            finally:
                await browser.close()

        text = re.sub(r"\s+", " ", raw.get("text") or "").strip()
        if not text and not raw.get("title"):
            raise AcquisitionFailure(f"No content extracted from {url}")

        headings = {level: raw.get(level) or [] for level in ("h1", "h2", "h3")}
        content = ScrapedContent(
            url=url,
            title=raw.get("title") or None,
            meta_description=raw.get("meta_description") or None,
            word_count=len(text.split()),
            clean_text=text[:MAX_TEXT_CHARS],
            extracted_keywords=extract_keywords(text, headings),
            headings=Headings(**headings),
            image_count=raw.get("image_count") or 0,
            link_count=raw.get("link_count") or 0,
            load_time=round(time.monotonic() - started, 3),
            has_ssl=url.lower().startswith("https://"),
        )
        logger.info(
            f"✅ Scraping complete - {content.word_count} words, "
            f"{len(content.extracted_keywords)} keywords"
        )
        return content
