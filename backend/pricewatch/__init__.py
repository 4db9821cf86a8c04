"""
Price crawler for challenge-gated price comparison sites.

This package provides:
- Navigation with challenge detection and retry (NavigationController)
- Multi-source offer extraction with priority fallback (ProductExtractor)
- Paginated product discovery (CategoryCrawler)
- Sequential batch runs with pacing and cooperative stop (ScrapeSessionManager)
"""

from .base import (
    BatchResult,
    ChallengeState,
    ExtractionSource,
    FailureKind,
    NavigationResult,
    ProductListing,
    SellerOffer,
    Severity,
)
from .config import SITES, get_site_config, list_sites
from .manager import ScrapeSessionManager
from .session import SessionStore, RateLimiter

__all__ = [
    'BatchResult',
    'ChallengeState',
    'ExtractionSource',
    'FailureKind',
    'NavigationResult',
    'ProductListing',
    'SellerOffer',
    'Severity',
    'SITES',
    'get_site_config',
    'list_sites',
    'ScrapeSessionManager',
    'SessionStore',
    'RateLimiter',
]
