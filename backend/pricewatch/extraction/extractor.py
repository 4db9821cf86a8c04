"""
Product extraction with ordered source fallback.

Sources run strictly by priority; the first one that yields at least one
valid offer supplies the seller list outright. Lower-priority sources are not
merged in, apart from the positional seller-name enrichment pass.
"""

import logging
from typing import List, Optional

from ..base import Colors, FailureKind, ProductListing, SellerOffer, ExtractionSource
from ..config import SiteConfig, get_site_config
from ..navigation import is_challenge_title
from ..utils.normalizers import format_price, normalize_product_name, normalize_url
from .enrichment import collect_seller_names, enrich_seller_names
from .page import LoadedPage
from .sources import run_source

logger = logging.getLogger(__name__)

NO_SELLERS_MESSAGE = "No sellers extracted"


def extract_product_details(page: LoadedPage, listing: ProductListing, site: SiteConfig) -> ProductListing:
    """Fill the listing's name and image from the page header."""
    title = page.title
    if not title:
        title_tag = page.soup.select_one(site.selectors['title'])
        title = title_tag.get_text() if title_tag else ''
    if title and not is_challenge_title(title):
        listing.name = normalize_product_name(title)

    image = page.soup.select_one(site.selectors['image'])
    if image and image.get('content'):
        listing.image_url = normalize_url(image['content'], site.base_url)
    return listing


def should_log_offer(position: int, total: int) -> bool:
    """Log the first five offers, every tenth, and the last."""
    return position <= 5 or position % 10 == 0 or position == total


class ProductExtractor:
    """
    Turns a loaded product page into seller offers.

    Usage:
        extractor = ProductExtractor()
        listing = extractor.extract(page, listing)
    """

    def __init__(self, site: Optional[SiteConfig] = None, log: Optional[logging.Logger] = None):
        self.site = site or get_site_config()
        self.logger = log or logger
        self.sources: List[ExtractionSource] = ExtractionSource.by_priority()

    def extract(self, page: LoadedPage, listing: Optional[ProductListing] = None) -> ProductListing:
        """
        Extract seller offers into ``listing``.

        The listing's name and image are expected to be filled by the caller.
        On return the aggregate prices are set; when no source produced an
        offer the listing carries EXTRACTION_EMPTY.
        """
        if listing is None:
            listing = ProductListing(url=page.url)

        offers: List[SellerOffer] = []
        for source in self.sources:
            results = run_source(source, page, self.site)
            rejected = [result for result in results if not result.ok]
            listing.rejected_offers.extend(rejected)

            offers = [result.offer for result in results if result.ok]
            if offers:
                listing.source = source
                self.logger.info(f"Found {len(offers)} sellers in {source.name}")
                break

            if rejected:
                self.logger.debug(f"{source.name}: {len(rejected)} record(s) rejected, trying next source")
            else:
                self.logger.debug(f"{source.name}: no data, trying next source")

        if not offers:
            listing.sellers = []
            listing.fail(FailureKind.EXTRACTION_EMPTY, NO_SELLERS_MESSAGE)
            self.logger.warning(f"{Colors.red('No sellers')} extracted from {page.url}")
            return listing.finalize(self._format)

        listing.sellers = offers
        if any(not offer.seller_name for offer in offers):
            filled = self.enrich(page, offers)
            if filled:
                self.logger.debug(f"Enriched {filled} seller name(s) from rendered rows")

        for offer in offers:
            if should_log_offer(offer.rank, len(offers)):
                seller = f"/{offer.seller_name}" if offer.seller_name else ''
                self.logger.info(
                    f"   Seller {offer.rank}/{len(offers)}: {offer.marketplace}{seller} - {offer.price_formatted}"
                )

        return listing.finalize(self._format)

    def enrich(self, page: LoadedPage, offers: List[SellerOffer]) -> int:
        """Run the rank-positional seller-name enrichment pass."""
        return enrich_seller_names(offers, collect_seller_names(page, self.site))

    def _format(self, price) -> str:
        return format_price(price, self.site.currency)
