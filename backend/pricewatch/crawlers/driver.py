"""
Browser driver interface.

The navigation and extraction layers only talk to a browser through this
small surface: load a URL, run a page script, read the title and the page
source. Scripts are JavaScript function expressions evaluated with an
optional single argument.
"""

from abc import ABC, abstractmethod
from typing import Any


class DriverError(Exception):
    """Base class for browser driver failures."""
    pass


class PageLoadTimeoutError(DriverError):
    """The page did not finish loading within the page-load timeout."""
    pass


class NavigationError(DriverError):
    """A navigation or page script failed; the browser is still usable."""
    pass


class BrowserUnavailableError(DriverError):
    """The browser process is gone or unusable; ends the batch."""
    pass


class ProfileInUseError(DriverError):
    """The profile directory is already driven by another live browser."""
    pass


# ============================================================
# PAGE SCRIPTS
# ============================================================

SCROLL_TO_FRACTION = "fraction => window.scrollTo(0, document.body.scrollHeight * fraction)"

SCROLL_TO_TOP = "() => window.scrollTo(0, 0)"

SCROLL_BY = "dy => window.scrollBy(0, dy)"

# Best-effort click on a challenge checkbox; returns true when something was clicked
SOLVE_CHALLENGE = """() => {
    const iframes = document.querySelectorAll('iframe');
    for (const iframe of iframes) {
        if (iframe.src && iframe.src.includes('challenges.cloudflare.com')) {
            try {
                iframe.contentDocument.querySelector('input[type=checkbox]').click();
                return true;
            } catch (e) {}
        }
    }
    for (const cb of document.querySelectorAll('input[type=checkbox]')) {
        if (cb.id.includes('cf') || String(cb.className).includes('cf')) {
            cb.click();
            return true;
        }
    }
    const container = document.querySelector('[class*="challenge"]')
        || document.querySelector('[id*="turnstile"]')
        || document.querySelector('[class*="cf-turnstile"]');
    if (container) {
        container.click();
        return true;
    }
    for (const el of document.querySelectorAll('label, [class*="checkbox"]')) {
        const text = (el.textContent || '').toLowerCase();
        if (text.includes('human') || text.includes('verify') || text.includes('robot')) {
            el.click();
            return true;
        }
    }
    return false;
}"""

# Window-scoped price list; returns null when the variable is missing or empty
READ_EMBEDDED_PRICES = """name => {
    const prices = window[name];
    if (!Array.isArray(prices) || prices.length === 0) {
        return null;
    }
    return prices.map(p => ({
        price: p.price || 0,
        vdCode: p.vdCode || '',
        vdName: p.vdName || '',
        badge: p.badge || '',
        url: p.url || p.purl || ''
    }));
}"""


class BrowserDriver(ABC):
    """
    Abstract browser session.

    One driver owns one browser page and is never used concurrently.
    """

    @abstractmethod
    async def navigate(self, url: str) -> None:
        """
        Load a URL.

        Raises:
            PageLoadTimeoutError: If the page-load timeout elapsed
            NavigationError: On any other recoverable navigation failure
            BrowserUnavailableError: If the browser is gone
        """
        pass

    @abstractmethod
    async def execute_script(self, script: str, arg: Any = None) -> Any:
        """Evaluate a page script and return its JSON-compatible result."""
        pass

    @abstractmethod
    async def read_title(self) -> str:
        pass

    @abstractmethod
    async def read_page_source(self) -> str:
        pass

    async def move_mouse(self, dx: float, dy: float) -> None:
        """Move the pointer by a small offset. Optional for drivers without a pointer."""
        return None

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
