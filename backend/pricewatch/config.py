"""
Site configurations for supported price comparison sources.

Each site has a SiteConfig that defines:
- Base URL and the canonical product URL shape
- CSS selectors for seller rows, product cards and pagination
- Noise tokens rejected when reading seller names from rendered text
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class SiteConfig:
    """Configuration for a price comparison source."""
    name: str                               # Full display name
    short_name: str                         # Logger / identifier (e.g., 'AKAKCE')
    base_url: str                           # Used to resolve relative links
    host: str                               # Required host fragment for product URLs
    product_id_pattern: str                 # Regex with one group capturing the product id
    currency: str = 'TL'                    # Trailing currency marker
    cheapest_badge: str = 'En Ucuz'         # Badge for rank 1
    embedded_variable: str = 'qvPrices'     # window-scoped price list
    next_page_label: str = 'Sonraki'        # Pagination link title/text
    seller_row_selector: str = ''           # Rendered seller rows
    product_card_selector: str = ''         # Category page product cards
    product_link_selector: str = ''         # Generic product-looking links
    noise_tokens: Tuple[str, ...] = ()      # Rejected inside seller name candidates
    cutoff_tokens: Tuple[str, ...] = ()     # Candidate text is cut at these phrases
    selectors: Dict[str, str] = field(default_factory=dict)


# ============================================================
# SITE CONFIGURATIONS
# ============================================================

SITES = {
    'akakce': SiteConfig(
        name='Akakce',
        short_name='AKAKCE',
        base_url='https://www.akakce.com',
        host='akakce.com',
        product_id_pattern=r',(\d+)\.html$',
        seller_row_selector='#APL li, ul.pl_v8 > li, ul.pl_v9 > li, li.p_w',
        product_card_selector='li[data-pr] a[href]',
        product_link_selector='a[href*="fiyati"]',
        # Phrases that show up next to the "/SellerName" marker in seller rows
        cutoff_tokens=(
            'Satıcıya',
            'Stokta',
            'Son güncelleme',
            'Kaçırılmayacak',
            'Bugün',
            'Kargo',
            ' iş günü',
        ),
        noise_tokens=(
            'Satıcıya',
            'Kaçırılmayacak',
            'Fırsatlar',
            'güncelleme',
            'En Ucuz',
            'Kargo',
            'Bugün',
            'iş günü',
            'dakika',
            'adet',
            'Stokta',
            ':',
        ),
        selectors={
            'title': 'title',
            'image': 'meta[property="og:image"]',
            'structured_data': 'script[type="application/ld+json"]',
            'marketplace_logo': 'img[alt]',
        },
    ),
}

DEFAULT_SITE = 'akakce'


def get_site_config(site_key: str = DEFAULT_SITE) -> SiteConfig:
    """
    Get configuration for a specific site.

    Args:
        site_key: Site identifier (e.g., 'akakce')

    Returns:
        SiteConfig object

    Raises:
        KeyError: If site not found
    """
    if site_key not in SITES:
        raise KeyError(f"Unknown site: {site_key}. Available: {list(SITES.keys())}")
    return SITES[site_key]


def list_sites() -> List[str]:
    """Get list of all configured site keys."""
    return list(SITES.keys())
