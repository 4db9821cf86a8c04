"""
Category page crawler.

Walks a paginated category listing and collects unique product detail URLs
up to a target count, using two independent link matchers per page.
"""

import asyncio
import logging
import random
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .base import Colors, Severity
from .config import SiteConfig, get_site_config
from .crawlers.driver import BrowserUnavailableError, DriverError
from .navigation import NavigationController
from .session import ProgressCallback, notify
from .utils.extractors import is_valid_product_url

logger = logging.getLogger(__name__)


class StopReason(Enum):
    """Why discovery ended."""
    TARGET_REACHED = "target_reached"
    NO_NEXT_PAGE = "no_next_page"           # normal end of catalog
    PAGE_LIMIT = "page_limit"
    BLOCKED = "blocked"                     # first page never loaded
    NEXT_PAGE_FAILED = "next_page_failed"


@dataclass
class DiscoveryResult:
    """Ordered unique product URLs plus how discovery ended."""
    urls: List[str] = field(default_factory=list)
    pages_visited: int = 0
    stop_reason: Optional[StopReason] = None

    @property
    def blocked(self) -> bool:
        return self.stop_reason is StopReason.BLOCKED


# ============================================================
# MATCHERS
# ============================================================

def _product_hrefs(anchors: Iterable, site: SiteConfig, page_url: str) -> List[str]:
    id_pattern = re.compile(site.product_id_pattern)
    urls = []
    for anchor in anchors:
        href = (anchor.get('href') or '').strip()
        if not href:
            continue
        url = urljoin(page_url, href)
        if id_pattern.search(url):
            urls.append(url)
    return urls


def match_product_cards(soup: BeautifulSoup, site: SiteConfig, page_url: str) -> List[str]:
    """Product links inside structural product cards."""
    return _product_hrefs(soup.select(site.product_card_selector), site, page_url)


def match_product_links(soup: BeautifulSoup, site: SiteConfig, page_url: str) -> List[str]:
    """Any link on the page that looks like a product detail URL."""
    return _product_hrefs(soup.select(site.product_link_selector), site, page_url)


def merge_unique(*groups: Iterable[str]) -> List[str]:
    """Union of URL lists, de-duplicated by exact string, first occurrence wins."""
    seen = set()
    merged = []
    for group in groups:
        for url in group:
            if url not in seen:
                seen.add(url)
                merged.append(url)
    return merged


def find_next_page(soup: BeautifulSoup, site: SiteConfig, page_url: str) -> Optional[str]:
    """Absolute URL of the "next page" control, or None at the end of the catalog."""
    label = site.next_page_label
    link = soup.select_one(f'a.p[title="{label}"]') or soup.select_one(f'a[title="{label}"]')
    if link is None:
        for anchor in soup.find_all('a'):
            if anchor.get_text().strip() == label or anchor.get('title') == label:
                link = anchor
                break
    if link is None or not link.get('href'):
        return None
    return urljoin(page_url, link['href'])


class CategoryCrawler:
    """
    Collects product URLs from a category listing.

    Usage:
        crawler = CategoryCrawler(controller)
        result = await crawler.discover(category_url, max_count=50)
        if result.blocked:
            ...
    """

    def __init__(
        self,
        controller: NavigationController,
        site: Optional[SiteConfig] = None,
        max_pages: int = 20,
        page_delay: Tuple[float, float] = (3.0, 5.0),
        next_page_retries: int = 2,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        rng: Optional[random.Random] = None,
        log: Optional[logging.Logger] = None,
    ):
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self.controller = controller
        self.site = site or get_site_config()
        self.max_pages = max_pages
        self.page_delay = page_delay
        self.next_page_retries = next_page_retries
        self.sleep = sleep or controller.sleep or asyncio.sleep
        self.rng = rng or controller.rng
        self.logger = log or logger

    async def discover(
        self,
        category_url: str,
        max_count: int,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DiscoveryResult:
        """
        Collect up to ``max_count`` unique product URLs.

        Stops when the target is reached, when no next-page control exists,
        or after ``max_pages`` pages, checked in that order. If the first page
        cannot be loaded or read the result is empty with stop reason BLOCKED;
        a later page failing keeps the URLs found so far.

        Raises:
            BrowserUnavailableError: If the browser is gone
        """
        result = DiscoveryResult()
        if max_count < 1:
            result.stop_reason = StopReason.TARGET_REACHED
            return result

        self.logger.info(f"Loading category page: {category_url}")
        await notify(on_progress, 5, "Loading category page...", Severity.INFO)

        navigation = await self.controller.navigate_with_retry(category_url)
        if not navigation.success:
            result.stop_reason = StopReason.BLOCKED
            self.logger.error(f"{Colors.red('Blocked')}: category page did not load after retries")
            await notify(on_progress, 10, "Page blocked by challenge after retries", Severity.ERROR)
            return result

        page_url = category_url
        while True:
            result.pages_visited += 1
            await notify(on_progress, 10, f"Page {result.pages_visited}: extracting URLs...", Severity.INFO)
            await self.controller.lazy_scroll()

            try:
                html = await self.controller.driver.read_page_source() or ''
            except BrowserUnavailableError:
                raise
            except DriverError as e:
                self.logger.warning(f"Could not read category page {result.pages_visited}: {e}")
                if result.pages_visited == 1:
                    result.stop_reason = StopReason.BLOCKED
                    await notify(on_progress, 10, "Category page could not be read", Severity.ERROR)
                    return result
                result.stop_reason = StopReason.NEXT_PAGE_FAILED
                break

            soup = BeautifulSoup(html, 'html.parser')
            candidates = merge_unique(
                match_product_cards(soup, self.site, page_url),
                match_product_links(soup, self.site, page_url),
            )

            before = len(result.urls)
            known = set(result.urls)
            for url in candidates:
                if len(result.urls) >= max_count:
                    break
                if url not in known and is_valid_product_url(url, self.site):
                    known.add(url)
                    result.urls.append(url)
            found = len(result.urls) - before

            self.logger.info(
                f"Page {result.pages_visited}: found {found} new URLs (total: {len(result.urls)}/{max_count})"
            )
            await notify(on_progress, 10, f"Found {len(result.urls)}/{max_count} product URLs", Severity.INFO)

            if len(result.urls) >= max_count:
                result.stop_reason = StopReason.TARGET_REACHED
                self.logger.info(f"{Colors.green('Reached target')} of {max_count} products")
                break

            next_url = find_next_page(soup, self.site, page_url)
            if next_url is None:
                result.stop_reason = StopReason.NO_NEXT_PAGE
                self.logger.info("No next page found")
                break

            if result.pages_visited >= self.max_pages:
                result.stop_reason = StopReason.PAGE_LIMIT
                self.logger.warning(f"Stopping at page limit ({self.max_pages})")
                break

            self.logger.info(f"Navigating to next page: {next_url}")
            await self.sleep(self.rng.uniform(*self.page_delay))
            navigation = await self.controller.navigate_with_retry(next_url, self.next_page_retries)
            if not navigation.success:
                result.stop_reason = StopReason.NEXT_PAGE_FAILED
                self.logger.warning("Failed to load next page")
                break
            page_url = next_url

        pages = result.pages_visited
        if result.urls:
            await notify(
                on_progress, 15,
                f"Found {len(result.urls)} product URLs from {pages} page(s)", Severity.SUCCESS,
            )
        else:
            await notify(on_progress, 15, "No product URLs found on page", Severity.ERROR)
        return result
