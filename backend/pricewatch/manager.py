"""
Scrape Session Manager - orchestrates batch runs.

Runs product pages sequentially through one browser session, paces requests
with a RateLimiter, and honors cooperative stops registered in a
SessionStore. Category runs discover product URLs first and then process
them the same way.
"""

import asyncio
import logging
import random
import time
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple, Union

from .base import (
    BatchResult,
    Colors,
    FailureKind,
    ProductListing,
    Severity,
)
from .category import CategoryCrawler
from .config import SiteConfig, get_site_config
from .crawlers.driver import (
    BrowserDriver,
    BrowserUnavailableError,
    DriverError,
    ProfileInUseError,
    READ_EMBEDDED_PRICES,
)
from .extraction import LoadedPage, ProductExtractor, extract_product_details
from .navigation import NavigationController
from .retry import RetryPolicy
from .session import ProgressCallback, RateLimiter, SessionStore, notify
from .utils.extractors import extract_product_id

logger = logging.getLogger(__name__)

INVALID_URL_MESSAGE = "Invalid product URL format"
BLOCKED_MESSAGE = "Page blocked by challenge after retries"


class ProductScraper:
    """
    Navigation plus extraction for a single product URL.

    Never raises for per-item failures; the returned listing carries the
    failure kind. Only BrowserUnavailableError propagates.
    """

    def __init__(
        self,
        controller: NavigationController,
        extractor: ProductExtractor,
        site: Optional[SiteConfig] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.controller = controller
        self.extractor = extractor
        self.site = site or get_site_config()
        self.logger = log or logger

    async def scrape(self, url: str) -> ProductListing:
        listing = ProductListing(url=url)

        product_id = extract_product_id(url, self.site)
        if not product_id:
            self.logger.warning(f"{Colors.red('[ERR]')} {INVALID_URL_MESSAGE}: {url}")
            return listing.fail(FailureKind.MALFORMED_URL, INVALID_URL_MESSAGE)
        listing.id = product_id

        navigation = await self.controller.navigate_with_retry(url)
        if not navigation.success:
            return listing.fail(navigation.failure_kind or FailureKind.NAVIGATION_BLOCKED, BLOCKED_MESSAGE)

        await self.controller.lazy_scroll()
        page = await self.capture(url)
        extract_product_details(page, listing, self.site)
        return self.extractor.extract(page, listing)

    async def capture(self, url: str) -> LoadedPage:
        """Snapshot title, source and the embedded price list of the current page."""
        driver = self.controller.driver
        page = LoadedPage(url=url)
        try:
            page.title = await driver.read_title() or ''
            page.html = await driver.read_page_source() or ''
        except BrowserUnavailableError:
            raise
        except DriverError as e:
            self.logger.warning(f"Could not read page content: {e}")

        try:
            prices = await driver.execute_script(READ_EMBEDDED_PRICES, self.site.embedded_variable)
        except BrowserUnavailableError:
            raise
        except DriverError as e:
            self.logger.debug(f"Embedded price list unavailable: {e}")
            prices = None
        page.embedded_prices = prices if isinstance(prices, list) else None
        return page


class ScrapeSessionManager:
    """
    Runs batches of product or category scrapes.

    Usage:
        manager = ScrapeSessionManager(SessionStore(), profile_dir='/tmp/profile')

        result = await manager.run_batch(urls, session_id, on_progress)
        result = await manager.run_category(category_url, 50, session_id)

        # From another task or thread
        manager.stop(session_id)
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        driver_factory: Optional[Callable[[], BrowserDriver]] = None,
        site: Optional[SiteConfig] = None,
        profile_dir: Union[str, Path, None] = None,
        headless: bool = False,
        page_load_timeout: float = 60.0,
        challenge_timeout: float = 90.0,
        challenge_poll_interval: float = 1.0,
        max_retries: int = 3,
        navigation_delay: Tuple[float, float] = (5.0, 10.0),
        retry_backoff: Tuple[float, float] = (5.0, 10.0),
        item_delay: Tuple[float, float] = (3.0, 6.0),
        block_cooldown: float = 30.0,
        item_retries: int = 2,
        max_pages: int = 20,
        max_batch_size: int = 500,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            store: Session registry shared with whoever calls stop()
            driver_factory: Builds a fresh driver per run; defaults to a
                PlaywrightDriver on ``profile_dir``
            item_retries: Extra attempts for an item that ended blocked
            max_batch_size: Product-list batches are cut to this many targets
        """
        self.store = store if store is not None else SessionStore()
        self.site = site or get_site_config()
        self.profile_dir = profile_dir
        self.headless = headless
        self.page_load_timeout = page_load_timeout
        self.driver_factory = driver_factory or self._default_driver
        self.challenge_timeout = challenge_timeout
        self.challenge_poll_interval = challenge_poll_interval
        self.max_retries = max_retries
        self.navigation_delay = navigation_delay
        self.retry_backoff = retry_backoff
        self.item_retries = item_retries
        self.max_pages = max_pages
        self.max_batch_size = max_batch_size
        self.sleep = sleep
        self.clock = clock
        self.rng = rng or random.Random()
        self.rate_limiter = RateLimiter(item_delay, block_cooldown, sleep=sleep, rng=self.rng)
        self.logger = logging.getLogger(f'scraper.{self.site.short_name.lower()}')

    def _default_driver(self) -> BrowserDriver:
        from .crawlers.stealth import PlaywrightDriver

        if self.profile_dir is None:
            raise ValueError("profile_dir is required for the default browser driver")
        return PlaywrightDriver(
            self.profile_dir,
            headless=self.headless,
            page_load_timeout=self.page_load_timeout,
            rng=self.rng,
        )

    def build_controller(self, driver: BrowserDriver) -> NavigationController:
        return NavigationController(
            driver,
            retry_policy=RetryPolicy(
                max_attempts=self.max_retries,
                backoff_range=self.retry_backoff,
                rng=self.rng,
            ),
            challenge_policy=RetryPolicy(
                max_attempts=1,
                poll_interval=self.challenge_poll_interval,
                ceiling=self.challenge_timeout,
                rng=self.rng,
            ),
            navigation_delay=self.navigation_delay,
            sleep=self.sleep,
            clock=self.clock,
            rng=self.rng,
            log=self.logger,
        )

    def build_scraper(self, controller: NavigationController) -> ProductScraper:
        extractor = ProductExtractor(self.site, log=self.logger)
        return ProductScraper(controller, extractor, self.site, log=self.logger)

    def stop(self, session_id: str) -> bool:
        """Request a cooperative stop. Returns False if the session is not running."""
        stopped = self.store.cancel(session_id)
        if stopped:
            self.logger.info(f"{Colors.yellow('Stop requested')} for session {session_id}")
        return stopped

    # ============================================================
    # BATCH RUNS
    # ============================================================

    async def run_batch(
        self,
        targets: Iterable[str],
        session_id: str,
        on_progress: Optional[ProgressCallback] = None,
        start_from: int = 1,
    ) -> BatchResult:
        """
        Scrape product URLs sequentially.

        Output order follows input order; a stopped run returns a prefix.

        Raises:
            SessionExistsError: If ``session_id`` is already running
        """
        self.store.register(session_id)
        result = BatchResult(session_id=session_id)
        try:
            targets = [url.strip() for url in targets if url and url.strip()]
            if len(targets) > self.max_batch_size:
                await notify(
                    on_progress, 0,
                    f"Limiting batch to {self.max_batch_size} of {len(targets)} URLs", Severity.INFO,
                )
                targets = targets[:self.max_batch_size]

            if not targets:
                self.logger.info(f"Batch {session_id} has no targets")
                return result

            pending = await self._apply_start_from(targets, start_from, result, on_progress)
            if pending is None:
                return result

            self.logger.info(f"Starting batch {session_id}: {len(pending)} product(s)")
            driver = self.driver_factory()
            try:
                scraper = self.build_scraper(self.build_controller(driver))
                await self._process(scraper, pending, session_id, result, on_progress, 0, 100)
            finally:
                await driver.close()

        except (BrowserUnavailableError, ProfileInUseError) as e:
            self._record_fatal(result, e)
            await notify(on_progress, 100, f"Browser error: {e}", Severity.ERROR)
        finally:
            self.store.remove(session_id)
            result.completed_at = datetime.now()

        await self._summarize(result, on_progress)
        return result

    async def run_category(
        self,
        category_url: str,
        max_count: int,
        session_id: str,
        on_progress: Optional[ProgressCallback] = None,
        start_from: int = 1,
    ) -> BatchResult:
        """
        Discover product URLs on a category listing, then scrape them.

        A blocked first category page ends the run with ``blocked`` set and
        no listings.

        Raises:
            SessionExistsError: If ``session_id`` is already running
        """
        self.store.register(session_id)
        result = BatchResult(session_id=session_id)
        try:
            self.logger.info(f"Starting category run {session_id}: {category_url} (max {max_count})")
            driver = self.driver_factory()
            try:
                controller = self.build_controller(driver)
                crawler = CategoryCrawler(
                    controller,
                    site=self.site,
                    max_pages=self.max_pages,
                    sleep=self.sleep,
                    rng=self.rng,
                    log=self.logger,
                )
                discovery = await crawler.discover(category_url, max_count, on_progress)
                result.discovered_urls = list(discovery.urls)

                if discovery.blocked:
                    result.blocked = True
                    self.logger.error(f"{Colors.red('Blocked')}: could not load category page")
                elif discovery.urls:
                    pending = await self._apply_start_from(discovery.urls, start_from, result, on_progress)
                    if pending:
                        warmup = min(20, max(8, 2 * len(pending)))
                        await notify(on_progress, 15, f"Waiting {warmup}s before scraping...", Severity.INFO)
                        await self.sleep(warmup)
                        await self._process(
                            self.build_scraper(controller), pending, session_id,
                            result, on_progress, 15, 100,
                        )
            finally:
                await driver.close()

        except (BrowserUnavailableError, ProfileInUseError) as e:
            self._record_fatal(result, e)
            await notify(on_progress, 100, f"Browser error: {e}", Severity.ERROR)
        finally:
            self.store.remove(session_id)
            result.completed_at = datetime.now()

        await self._summarize(result, on_progress)
        return result

    # ============================================================
    # INTERNALS
    # ============================================================

    async def _apply_start_from(
        self,
        targets: List[str],
        start_from: int,
        result: BatchResult,
        on_progress: Optional[ProgressCallback],
    ) -> Optional[List[str]]:
        """Targets from the 1-based ``start_from`` on, or None when it is past the end."""
        start_from = max(1, start_from)
        if start_from > len(targets):
            message = f"Start index {start_from} is past the {len(targets)} available target(s)"
            self.logger.error(message)
            await notify(on_progress, 100, message, Severity.ERROR)
            return None
        if start_from > 1:
            result.skipped = start_from - 1
            await notify(on_progress, 0, f"Skipping first {result.skipped} target(s)", Severity.INFO)
        return targets[start_from - 1:]

    async def _process(
        self,
        scraper: ProductScraper,
        pending: List[str],
        session_id: str,
        result: BatchResult,
        on_progress: Optional[ProgressCallback],
        start_percent: float,
        end_percent: float,
    ):
        total = len(pending)
        offset = result.skipped

        for position, url in enumerate(pending):
            if not self.store.is_cancelled(session_id):
                await self.rate_limiter.before_item(position)

            if self.store.is_cancelled(session_id):
                result.cancelled = True
                self.logger.info(f"{Colors.yellow('Stopped')} after {len(result.listings)} item(s)")
                await notify(on_progress, end_percent, "Stopped by user", Severity.WARNING)
                break

            index = offset + position + 1
            self.logger.info(f"\n{Colors.cyan('❯❯❯')}")
            self.logger.info(f"{Colors.bold(f'[{index}/{offset + total}]')} {url}")

            try:
                listing = await self._scrape_item(scraper, url, session_id, is_last=position == total - 1)
            except (BrowserUnavailableError, ProfileInUseError):
                raise
            except Exception as e:
                self.logger.error(f"   {Colors.red('[ERR]')} {url}: {e}")
                listing = ProductListing(url=url, id=extract_product_id(url, self.site) or '')
                listing.fail(FailureKind.UNEXPECTED_ERROR, f"Unexpected error: {e}")
            result.listings.append(listing)

            percent = start_percent + (end_percent - start_percent) * (position + 1) / total
            if listing.is_success:
                await notify(
                    on_progress, percent,
                    f"[{index}] {listing.name or listing.id}: {listing.seller_count} sellers, from {listing.lowest_price}",
                    Severity.SUCCESS,
                )
            else:
                self.logger.warning(f"   {Colors.red('[ERR]')} {listing.error_message}")
                await notify(on_progress, percent, f"[{index}] {listing.error_message}", Severity.WARNING)

    async def _scrape_item(self, scraper: ProductScraper, url: str, session_id: str, is_last: bool) -> ProductListing:
        """Scrape one item, retrying it after a cooldown while it stays blocked."""
        listing = await scraper.scrape(url)
        retries = 0
        while listing.failure_kind is FailureKind.NAVIGATION_BLOCKED and retries < self.item_retries:
            if self.store.is_cancelled(session_id):
                break
            await self.rate_limiter.after_block()
            retries += 1
            self.logger.info(f"Retrying blocked item ({retries}/{self.item_retries})")
            listing = await scraper.scrape(url)

        if (
            listing.failure_kind is FailureKind.NAVIGATION_BLOCKED
            and not is_last
            and not self.store.is_cancelled(session_id)
        ):
            await self.rate_limiter.after_block()
        return listing

    def _record_fatal(self, result: BatchResult, error: Exception):
        result.fatal_error = str(error)
        self.logger.error(f"{Colors.red('Browser unusable')}, ending run early: {error}")

    async def _summarize(self, result: BatchResult, on_progress: Optional[ProgressCallback]):
        summary = (
            f"Done: {result.successful} products, {result.total_sellers} sellers, "
            f"{result.errors} errors, {result.skipped} skipped"
        )
        if result.cancelled:
            summary += " (stopped early)"
        self.logger.info(
            f"\n{Colors.bold('Summary')}: {Colors.green(f'{result.successful} ok')}, "
            f"{Colors.red(f'{result.errors} errors')}, {result.total_sellers} sellers"
        )
        severity = Severity.SUCCESS
        if result.cancelled or result.blocked or result.fatal_error:
            severity = Severity.WARNING
        await notify(on_progress, 100, summary, severity)
