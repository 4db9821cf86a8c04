"""
Core data structures for the price crawler.

This module defines the navigation outcome types, the seller offer and
product listing models handed to export collaborators, and the shared
exception classes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

# ANSI color codes for terminal output
class Colors:
    """ANSI color codes for colorized logging."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GRAY = '\033[90m'

    @staticmethod
    def green(text):
        return f"{Colors.GREEN}{text}{Colors.RESET}"

    @staticmethod
    def yellow(text):
        return f"{Colors.YELLOW}{text}{Colors.RESET}"

    @staticmethod
    def red(text):
        return f"{Colors.RED}{text}{Colors.RESET}"

    @staticmethod
    def blue(text):
        return f"{Colors.BLUE}{text}{Colors.RESET}"

    @staticmethod
    def cyan(text):
        return f"{Colors.CYAN}{text}{Colors.RESET}"

    @staticmethod
    def gray(text):
        return f"{Colors.GRAY}{text}{Colors.RESET}"

    @staticmethod
    def bold(text):
        return f"{Colors.BOLD}{text}{Colors.RESET}"


class ChallengeState(Enum):
    """Anti-automation challenge state, scoped to one navigation call."""
    NONE = "none"
    DETECTED = "detected"
    SOLVING = "solving"
    PASSED = "passed"
    TIMED_OUT = "timed_out"


class FailureKind(Enum):
    """Per-item failure classification."""
    NAVIGATION_BLOCKED = "navigation_blocked"   # challenge never cleared
    EXTRACTION_EMPTY = "extraction_empty"       # no source yielded an offer
    MALFORMED_URL = "malformed_url"             # no product id in URL
    CANCELLED = "cancelled"                     # cooperative stop observed
    UNEXPECTED_ERROR = "unexpected_error"       # any other error raised while scraping the item


class ExtractionSource(Enum):
    """
    Page-embedded offer sources, ordered by trust.

    The value is the priority: lower runs first.
    """
    STRUCTURED_DATA = 1     # JSON-LD Product/offers
    EMBEDDED_VARIABLE = 2   # window-scoped price list
    DOM_HEURISTIC = 3       # rendered seller rows

    @classmethod
    def by_priority(cls) -> List['ExtractionSource']:
        return sorted(cls, key=lambda source: source.value)


class Severity(Enum):
    """Severity of a progress event."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class NavigationResult:
    """Outcome of one NavigationController.navigate_with_retry call."""
    success: bool
    challenge_encountered: bool = False
    elapsed_seconds: float = 0.0
    failure_kind: Optional[FailureKind] = None
    attempts: int = 0


@dataclass
class SellerOffer:
    """One seller's price for a product within a marketplace."""
    rank: int
    marketplace: str
    price: Decimal
    price_formatted: str
    seller_name: str = ''               # empty means "no sub-seller"
    product_link: str = ''
    badges: List[str] = field(default_factory=list)
    in_stock: bool = True
    source: Optional[ExtractionSource] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rank': self.rank,
            'marketplace': self.marketplace,
            'seller_name': self.seller_name,
            'price': str(self.price),
            'price_formatted': self.price_formatted,
            'product_link': self.product_link,
            'badges': list(self.badges),
            'in_stock': self.in_stock,
            'source': self.source.name if self.source else None,
        }


@dataclass
class OfferResult:
    """
    Result of converting one raw source record into a SellerOffer.

    Exactly one of ``offer`` and ``error`` is set.
    """
    source: ExtractionSource
    offer: Optional[SellerOffer] = None
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.offer is not None

    @classmethod
    def rejected(cls, source: ExtractionSource, error: str, raw: Dict[str, Any]) -> 'OfferResult':
        return cls(source=source, error=error, raw=raw)


@dataclass
class ProductListing:
    """A product page with every retained seller offer."""
    url: str
    id: str = ''
    name: str = ''
    image_url: str = ''
    sellers: List[SellerOffer] = field(default_factory=list)
    lowest_price: str = ''
    highest_price: str = ''
    error_message: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    source: Optional[ExtractionSource] = None
    rejected_offers: List[OfferResult] = field(default_factory=list)
    scraped_at: datetime = field(default_factory=datetime.now)

    @property
    def is_success(self) -> bool:
        return not self.error_message

    @property
    def seller_count(self) -> int:
        return len(self.sellers)

    def fail(self, kind: FailureKind, message: str) -> 'ProductListing':
        self.failure_kind = kind
        self.error_message = message
        return self

    def finalize(self, format_price) -> 'ProductListing':
        """Compute aggregate prices from the retained offers."""
        if self.sellers:
            prices = [seller.price for seller in self.sellers]
            self.lowest_price = format_price(min(prices))
            self.highest_price = format_price(max(prices))
        else:
            self.lowest_price = ''
            self.highest_price = ''
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'url': self.url,
            'name': self.name,
            'image_url': self.image_url,
            'seller_count': self.seller_count,
            'lowest_price': self.lowest_price,
            'highest_price': self.highest_price,
            'sellers': [seller.to_dict() for seller in self.sellers],
            'source': self.source.name if self.source else None,
            'error_message': self.error_message,
            'failure_kind': self.failure_kind.value if self.failure_kind else None,
            'success': self.is_success,
            'scraped_at': self.scraped_at.isoformat(),
        }


@dataclass
class BatchResult:
    """Result of a batch run over many targets."""
    session_id: str
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    listings: List[ProductListing] = field(default_factory=list)
    cancelled: bool = False
    blocked: bool = False           # category discovery could not load its first page
    fatal_error: Optional[str] = None
    skipped: int = 0
    discovered_urls: List[str] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for listing in self.listings if listing.is_success)

    @property
    def errors(self) -> int:
        return len(self.listings) - self.successful

    @property
    def total_sellers(self) -> int:
        return sum(listing.seller_count for listing in self.listings)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_seconds': self.duration_seconds,
            'total': len(self.listings),
            'successful': self.successful,
            'errors': self.errors,
            'skipped': self.skipped,
            'total_sellers': self.total_sellers,
            'cancelled': self.cancelled,
            'blocked': self.blocked,
            'fatal_error': self.fatal_error,
            'discovered_urls': list(self.discovered_urls),
            'listings': [listing.to_dict() for listing in self.listings],
        }


class SessionExistsError(Exception):
    """Raised when a session id is registered twice."""
    pass
