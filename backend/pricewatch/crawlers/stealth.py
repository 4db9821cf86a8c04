"""
Stealth browser driver for sites with bot detection.

Uses a Playwright persistent Chromium context so cookies and challenge
clearances survive across runs through the profile directory. Includes a
realistic fingerprint, Turkish locale headers, and an init script that hides
automation indicators.
"""

import asyncio
import os
import random
import threading
from pathlib import Path
from typing import Any, Optional, Set, Union

from playwright.async_api import (
    async_playwright,
    BrowserContext,
    Page,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)
import logging

from .driver import (
    BrowserDriver,
    BrowserUnavailableError,
    NavigationError,
    PageLoadTimeoutError,
    ProfileInUseError,
)

logger = logging.getLogger(__name__)


USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36',
]

# Error text that means the page, context or browser is gone
CLOSED_MARKERS = (
    'has been closed',
    'target closed',
    'connection closed',
    'browser closed',
    'browser has disconnected',
)

STEALTH_INIT_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined
    });

    Object.defineProperty(navigator, 'plugins', {
        get: () => [1, 2, 3, 4, 5]
    });

    Object.defineProperty(navigator, 'languages', {
        get: () => ['tr-TR', 'tr', 'en-US', 'en']
    });

    const originalQuery = window.navigator.permissions.query;
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications' ?
            Promise.resolve({ state: Notification.permission }) :
            originalQuery(parameters)
    );
"""


class PlaywrightDriver(BrowserDriver):
    """
    Browser driver backed by a persistent Playwright Chromium profile.

    Only one live driver per profile directory is allowed in a process.

    Usage:
        async with PlaywrightDriver(profile_dir) as driver:
            await driver.navigate(url)
            html = await driver.read_page_source()
    """

    _active_profiles: Set[str] = set()
    _profiles_lock = threading.Lock()

    def __init__(
        self,
        profile_dir: Union[str, Path],
        headless: bool = False,
        page_load_timeout: float = 60.0,
        user_agent: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the driver. The browser starts lazily on first use.

        Args:
            profile_dir: Durable directory for cookies and browser state
            headless: Run without a window (challenges are cleared more often headed)
            page_load_timeout: Seconds before a navigation is abandoned
            user_agent: Fixed user agent; a random one from USER_AGENTS otherwise
        """
        self.profile_dir = Path(profile_dir)
        self.headless = headless
        self.page_load_timeout = page_load_timeout
        self._rng = rng or random.Random()
        self.user_agent = user_agent or self._rng.choice(USER_AGENTS)
        self._playwright = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._profile_key: Optional[str] = None
        self._mouse = (960.0, 540.0)

    # ============================================================
    # PROFILE LOCK
    # ============================================================

    def _acquire_profile(self):
        key = os.path.abspath(self.profile_dir)
        with self._profiles_lock:
            if key in self._active_profiles:
                raise ProfileInUseError(f"Browser profile already in use: {key}")
            self._active_profiles.add(key)
        self._profile_key = key

    def _release_profile(self):
        if self._profile_key is None:
            return
        with self._profiles_lock:
            self._active_profiles.discard(self._profile_key)
        self._profile_key = None

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def start(self):
        """Launch Chromium with the persistent profile if not already running."""
        if self._page is not None:
            return

        self._acquire_profile()
        try:
            self.profile_dir.mkdir(parents=True, exist_ok=True)
            self._playwright = await async_playwright().start()

            logger.info(f"Launching Chromium with profile {self.profile_dir}")
            self._context = await self._playwright.chromium.launch_persistent_context(
                str(self.profile_dir),
                headless=self.headless,
                args=[
                    '--disable-blink-features=AutomationControlled',
                    '--disable-dev-shm-usage',
                    '--no-sandbox',
                    '--disable-infobars',
                    '--start-maximized',
                    '--lang=tr-TR',
                ],
                ignore_default_args=['--enable-automation'],
                viewport={'width': 1920, 'height': 1080},
                user_agent=self.user_agent,
                locale='tr-TR',
                timezone_id='Europe/Istanbul',
                extra_http_headers={
                    'Accept-Language': 'tr-TR,tr;q=0.9,en-US;q=0.8,en;q=0.7',
                },
                handle_sigint=False,
                handle_sigterm=False,
                handle_sighup=False,
            )
            await self._context.add_init_script(STEALTH_INIT_SCRIPT)

            pages = self._context.pages
            self._page = pages[0] if pages else await self._context.new_page()
            self._page.set_default_navigation_timeout(self.page_load_timeout * 1000)
            logger.debug("Browser initialization successful")

        except PlaywrightError as e:
            logger.error(f"Failed to initialize browser: {e}")
            await self._cleanup()
            raise BrowserUnavailableError(f"Failed to start browser: {e}") from e
        except Exception:
            await self._cleanup()
            raise

    async def _cleanup(self):
        """Clean up browser resources with timeouts to prevent hanging."""
        cleanup_timeout = 5.0
        self._page = None

        if self._context:
            try:
                await asyncio.wait_for(self._context.close(), timeout=cleanup_timeout)
            except asyncio.TimeoutError:
                logger.warning("Context close timed out, forcing cleanup")
            except PlaywrightError as e:
                logger.debug(f"Error closing context: {e}")
            self._context = None

        if self._playwright:
            try:
                await asyncio.wait_for(self._playwright.stop(), timeout=cleanup_timeout)
            except asyncio.TimeoutError:
                logger.warning("Playwright stop timed out, forcing cleanup")
            except PlaywrightError as e:
                logger.debug(f"Error stopping playwright: {e}")
            self._playwright = None

        self._release_profile()

    async def close(self):
        """Close the browser and release the profile directory."""
        await self._cleanup()

    async def __aenter__(self):
        await self.start()
        return self

    # ============================================================
    # DRIVER OPERATIONS
    # ============================================================

    async def _ensure_page(self) -> Page:
        await self.start()
        if self._page is None or self._page.is_closed():
            raise BrowserUnavailableError("Browser page is closed")
        return self._page

    @staticmethod
    def _translate(error: PlaywrightError, action: str) -> Exception:
        message = str(error)
        if isinstance(error, PlaywrightTimeoutError):
            return PageLoadTimeoutError(f"{action} timed out: {message}")
        if any(marker in message.lower() for marker in CLOSED_MARKERS):
            return BrowserUnavailableError(f"Browser unavailable during {action}: {message}")
        return NavigationError(f"{action} failed: {message}")

    async def navigate(self, url: str) -> None:
        page = await self._ensure_page()
        try:
            await page.goto(
                url,
                wait_until='domcontentloaded',
                timeout=int(self.page_load_timeout * 1000),
            )
        except PlaywrightError as e:
            raise self._translate(e, 'navigation') from e

    async def execute_script(self, script: str, arg: Any = None) -> Any:
        page = await self._ensure_page()
        try:
            if arg is None:
                return await page.evaluate(script)
            return await page.evaluate(script, arg)
        except PlaywrightError as e:
            raise self._translate(e, 'script') from e

    async def read_title(self) -> str:
        page = await self._ensure_page()
        try:
            return await page.title()
        except PlaywrightError as e:
            raise self._translate(e, 'title read') from e

    async def read_page_source(self) -> str:
        page = await self._ensure_page()
        try:
            return await page.content()
        except PlaywrightError as e:
            raise self._translate(e, 'page source read') from e

    async def move_mouse(self, dx: float, dy: float) -> None:
        page = await self._ensure_page()
        x = min(max(self._mouse[0] + dx, 0.0), 1919.0)
        y = min(max(self._mouse[1] + dy, 0.0), 1079.0)
        try:
            await page.mouse.move(x, y, steps=self._rng.randint(3, 8))
        except PlaywrightError as e:
            raise self._translate(e, 'mouse move') from e
        self._mouse = (x, y)
