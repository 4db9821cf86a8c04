"""
Seller name enrichment from rendered seller rows.

Structured data and the embedded price list often carry only the
marketplace. The rendered rows show the seller as "/SellerName" next to the
marketplace logo, in the same order as the offers, so names are matched to
offers by rank position.
"""

import logging
from typing import List

from ..base import SellerOffer
from ..config import SiteConfig
from ..utils.extractors import extract_marketplace, extract_seller_name
from .page import LoadedPage

logger = logging.getLogger(__name__)


def collect_seller_names(page: LoadedPage, site: SiteConfig) -> List[str]:
    """Seller name per rendered row, '' where a row has no valid name."""
    names = []
    for row in page.soup.select(site.seller_row_selector):
        names.append(extract_seller_name(row, site, extract_marketplace(row)))
    return names


def enrich_seller_names(offers: List[SellerOffer], names: List[str]) -> int:
    """
    Fill empty seller names by rank position.

    Never overwrites a non-empty name, so repeated runs are no-ops.

    Returns:
        Number of offers that received a name
    """
    filled = 0
    for offer in offers:
        if offer.seller_name:
            continue
        index = offer.rank - 1
        if 0 <= index < len(names) and names[index]:
            offer.seller_name = names[index]
            filled += 1
    return filled
