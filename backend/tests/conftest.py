"""
Pytest configuration and fixtures for Pricewatch tests.
"""

import json
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from pricewatch.crawlers.driver import (
    BrowserDriver,
    READ_EMBEDDED_PRICES,
    SOLVE_CHALLENGE,
)
from pricewatch.navigation import NavigationController
from pricewatch.retry import RetryPolicy


CHALLENGE_TITLE = "Just a moment..."
CHALLENGE_HTML = (
    "<html><head><title>Just a moment...</title></head>"
    "<body><div id='challenge-platform'>Verify you are human</div></body></html>"
)

PRODUCT_URL = "https://www.akakce.com/cep-telefonu/en-ucuz-iphone-15-128-gb-fiyati,123456.html"
CATEGORY_URL = "https://www.akakce.com/cep-telefonu.html"


def product_url(product_id: int) -> str:
    return f"https://www.akakce.com/cep-telefonu/en-ucuz-telefon-{product_id}-fiyati,{product_id}.html"


# ============================================================
# FAKE TIME
# ============================================================

class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)


# ============================================================
# FAKE BROWSER
# ============================================================

@dataclass
class FakePage:
    """
    Scripted page.

    challenge_polls is the number of page-source reads that still show the
    challenge after each navigation; use float('inf') for a permanent block.
    """
    title: str = "Product Page | Akakçe"
    html: str = "<html><head><title>Product Page | Akakçe</title></head><body></body></html>"
    embedded: Optional[List[Dict[str, Any]]] = None
    challenge_polls: float = 0


class FakeDriver(BrowserDriver):
    """In-memory BrowserDriver serving FakePages by URL."""

    def __init__(self, pages: Optional[Dict[str, FakePage]] = None, solve_result: bool = False):
        self.pages = pages or {}
        self.solve_result = solve_result
        self.current: Optional[FakePage] = None
        self.remaining_challenge: float = 0
        self.navigations: List[str] = []
        self.scripts: List[str] = []
        self.mouse_moves = 0
        self.closed = False
        self.errors: Dict[str, List[Exception]] = {}
        self.on_navigate: Optional[Callable[[str], None]] = None

    def fail_next(self, url: str, error: Exception):
        self.errors.setdefault(url, []).append(error)

    async def navigate(self, url: str) -> None:
        self.navigations.append(url)
        if self.on_navigate:
            self.on_navigate(url)
        if self.errors.get(url):
            raise self.errors[url].pop(0)
        self.current = self.pages.get(url, FakePage(title="Sayfa Bulunamadı", html="<html></html>"))
        self.remaining_challenge = self.current.challenge_polls

    async def execute_script(self, script: str, arg: Any = None) -> Any:
        self.scripts.append(script)
        if script == READ_EMBEDDED_PRICES:
            return self.current.embedded if self.current else None
        if script == SOLVE_CHALLENGE:
            return self.solve_result
        return None

    async def read_title(self) -> str:
        if self.current is None:
            return ""
        if self.remaining_challenge > 0:
            return CHALLENGE_TITLE
        return self.current.title

    async def read_page_source(self) -> str:
        if self.current is None:
            return ""
        if self.remaining_challenge > 0:
            self.remaining_challenge -= 1
            return CHALLENGE_HTML
        return self.current.html

    async def move_mouse(self, dx: float, dy: float) -> None:
        self.mouse_moves += 1

    async def close(self) -> None:
        self.closed = True

    def count(self, script: str) -> int:
        return self.scripts.count(script)


class UnreadablePageDriver(FakeDriver):
    """
    FakeDriver whose second page-source read after loading one of
    ``unreadable`` raises ``error``.

    The first read belongs to the challenge wait, the second to the caller
    inspecting the loaded page.
    """

    def __init__(self, pages: Dict[str, FakePage], unreadable: List[str], error: Exception):
        super().__init__(pages)
        self.unreadable = set(unreadable)
        self.error = error
        self.reads = 0

    async def navigate(self, url: str) -> None:
        await super().navigate(url)
        self.reads = 0

    async def read_page_source(self) -> str:
        self.reads += 1
        if self.reads == 2 and self.navigations and self.navigations[-1] in self.unreadable:
            raise self.error
        return await super().read_page_source()


# ============================================================
# HTML BUILDERS
# ============================================================

def json_ld(offers: List[Dict[str, Any]], aggregate: bool = True) -> Dict[str, Any]:
    """Product JSON-LD document with the given Offer objects."""
    if aggregate:
        offers_value = {"@type": "AggregateOffer", "offerCount": len(offers), "offers": offers}
    else:
        offers_value = offers
    return {
        "@context": "https://schema.org",
        "@type": "Product",
        "name": "iPhone 15 128 GB",
        "offers": offers_value,
    }


def ld_offer(price: Any, seller: str, url: str = "") -> Dict[str, Any]:
    return {
        "@type": "Offer",
        "price": price,
        "priceCurrency": "TRY",
        "seller": {"@type": "Organization", "name": seller},
        "url": url,
    }


def seller_row(marketplace: str, seller: str = "", price: str = "54.999,00 TL", href: str = "/c/?r=1") -> str:
    seller_span = f"<span class='v_v8'>/{seller}</span>" if seller else ""
    return (
        f"<li><a href='{href}'><img alt='{marketplace}' src='//cdn.akakce.com/{marketplace}.png'>"
        f"{seller_span}<span class='pt_v8'>{price}</span></a>"
        f"<span class='sh'>Satıcıya Git</span></li>"
    )


def product_html(
    title: str = "iPhone 15 128 GB Fiyatları | Akakçe",
    image: str = "//cdn.akakce.com/iphone-15.jpg",
    structured: Optional[Any] = None,
    rows: Optional[List[str]] = None,
    raw_ld: Optional[str] = None,
) -> str:
    head = [f"<title>{title}</title>"]
    if image:
        head.append(f"<meta property='og:image' content='{image}'>")
    if structured is not None:
        head.append(f"<script type='application/ld+json'>{json.dumps(structured)}</script>")
    if raw_ld is not None:
        head.append(f"<script type='application/ld+json'>{raw_ld}</script>")
    body = f"<ul id='APL'>{''.join(rows or [])}</ul>"
    return f"<html><head>{''.join(head)}</head><body>{body}</body></html>"


def category_html(
    cards: List[str] = (),
    links: List[str] = (),
    next_href: Optional[str] = None,
    title: str = "Cep Telefonu Fiyatları | Akakçe",
) -> str:
    card_items = "".join(f"<li data-pr='{i}'><a href='{url}'>Ürün {i}</a></li>" for i, url in enumerate(cards))
    link_items = "".join(f"<a href='{url}'>Fiyatları gör</a>" for url in links)
    pager = f"<a class='p' title='Sonraki' href='{next_href}'>Sonraki</a>" if next_href else ""
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<ul class='pl_v9'>{card_items}</ul><div class='more'>{link_items}</div>{pager}"
        f"</body></html>"
    )


def product_page(title: str = "iPhone 15 128 GB Fiyatları | Akakçe", **kwargs) -> FakePage:
    embedded = kwargs.pop("embedded", None)
    challenge_polls = kwargs.pop("challenge_polls", 0)
    return FakePage(
        title=title,
        html=product_html(title=title, **kwargs),
        embedded=embedded,
        challenge_polls=challenge_polls,
    )


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def driver():
    return FakeDriver()


def make_controller(driver: BrowserDriver, clock: FakeClock, max_attempts: int = 3, ceiling: float = 30.0, **kwargs):
    rng = random.Random(0)
    return NavigationController(
        driver,
        retry_policy=RetryPolicy(max_attempts=max_attempts, backoff_range=(1.0, 2.0), rng=rng),
        challenge_policy=RetryPolicy(max_attempts=1, poll_interval=1.0, ceiling=ceiling, rng=rng),
        navigation_delay=kwargs.pop("navigation_delay", (5.0, 10.0)),
        settle_delay=kwargs.pop("settle_delay", (0.5, 0.5)),
        sleep=clock.sleep,
        clock=clock,
        rng=rng,
        **kwargs,
    )


@pytest.fixture
def controller(driver, clock):
    return make_controller(driver, clock)


@pytest.fixture
def make_manager(clock):
    """Factory for a ScrapeSessionManager driven by a FakeDriver and the fake clock."""
    from pricewatch.manager import ScrapeSessionManager
    from pricewatch.session import SessionStore

    def factory(driver: FakeDriver, store: Optional[SessionStore] = None, **kwargs):
        options = dict(
            challenge_timeout=10.0,
            challenge_poll_interval=1.0,
            max_retries=2,
            navigation_delay=(0.0, 0.0),
            retry_backoff=(1.0, 1.0),
            item_delay=(4.0, 4.0),
            block_cooldown=30.0,
            item_retries=1,
        )
        options.update(kwargs)
        return ScrapeSessionManager(
            store if store is not None else SessionStore(),
            driver_factory=lambda: driver,
            sleep=clock.sleep,
            clock=clock,
            rng=random.Random(0),
            **options,
        )

    return factory


@pytest.fixture
def runner(make_manager):
    """JobRunner whose manager serves three healthy product pages."""
    from api.jobs import JobRunner

    pages = {
        product_url(i): product_page(
            title=f"Telefon {i} Fiyatları | Akakçe",
            structured=json_ld([ld_offer(f"{1000 * i}.00", f"Pttavm/Satici{i}")]),
        )
        for i in (1, 2, 3)
    }
    pages[CATEGORY_URL] = FakePage(
        title="Cep Telefonu Fiyatları | Akakçe",
        html=category_html(cards=[product_url(1), product_url(2)], links=[product_url(3)]),
    )
    fake = FakeDriver(pages)
    return JobRunner(lambda store: make_manager(fake, store))


@pytest.fixture(scope="function")
def client(runner):
    """Create a test client with the job runner override."""
    from api.main import app, get_runner

    app.dependency_overrides[get_runner] = lambda: runner

    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()
