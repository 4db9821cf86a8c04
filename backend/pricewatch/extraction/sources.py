"""
Offer sources embedded in a product page.

Each ExtractionSource has one collector, which pulls raw records out of the
page, and one converter, which validates a raw record and turns it into a
SellerOffer. Converters never raise for bad data; they return a rejected
OfferResult carrying the reason.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..base import ExtractionSource, OfferResult, SellerOffer
from ..config import SiteConfig
from ..utils.extractors import (
    extract_marketplace,
    extract_price,
    extract_seller_name,
    split_seller_label,
)
from ..utils.normalizers import (
    format_price,
    normalize_seller_name,
    normalize_url,
    parse_decimal,
    parse_display_price,
)
from .page import LoadedPage

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]


def validate_offer(
    source: ExtractionSource,
    raw: RawRecord,
    price: Optional[Decimal],
    marketplace: str,
    site: SiteConfig,
    seller_name: str = '',
    product_link: str = '',
    badges: Optional[List[str]] = None,
    in_stock: bool = True,
) -> OfferResult:
    """Build an offer, rejecting it unless price > 0, fits the display format and marketplace is non-empty."""
    if price is None:
        return OfferResult.rejected(source, 'missing or unparseable price', raw)
    if price <= 0:
        return OfferResult.rejected(source, f'non-positive price {price}', raw)
    marketplace = normalize_seller_name(marketplace)
    if not marketplace:
        return OfferResult.rejected(source, 'empty marketplace', raw)
    try:
        price_formatted = format_price(price, site.currency)
    except InvalidOperation:
        return OfferResult.rejected(source, f'price out of range {price}', raw)

    offer = SellerOffer(
        rank=0,
        marketplace=marketplace,
        seller_name=normalize_seller_name(seller_name),
        price=price,
        price_formatted=price_formatted,
        product_link=normalize_url(product_link, site.base_url),
        badges=list(badges or []),
        in_stock=in_stock,
        source=source,
    )
    return OfferResult(source=source, offer=offer, raw=raw)


# ============================================================
# STRUCTURED DATA (JSON-LD)
# ============================================================

def _is_type(node: Dict[str, Any], type_name: str) -> bool:
    node_type = node.get('@type')
    if isinstance(node_type, list):
        return type_name in node_type
    return node_type == type_name


def _product_nodes(data: Any) -> List[Dict[str, Any]]:
    """Product objects in a JSON-LD document (top level, list, or @graph)."""
    if isinstance(data, list):
        nodes = data
    elif isinstance(data, dict):
        nodes = data.get('@graph') if isinstance(data.get('@graph'), list) else [data]
    else:
        return []
    return [node for node in nodes if isinstance(node, dict) and _is_type(node, 'Product')]


def _offer_nodes(offers: Any) -> List[Any]:
    """
    Flatten a Product's offers value.

    Handles a single Offer, an AggregateOffer with nested offers, and a
    plain list of offers.
    """
    if isinstance(offers, list):
        return offers
    if isinstance(offers, dict):
        nested = offers.get('offers')
        if isinstance(nested, list):
            return nested
        if isinstance(nested, dict):
            return [nested]
        if _is_type(offers, 'Offer'):
            return [offers]
    return []


def collect_structured_data(page: LoadedPage, site: SiteConfig) -> List[Any]:
    """
    Raw offers from JSON-LD blocks.

    A block that is not valid JSON yields a rejected OfferResult in place of
    its records.
    """
    records: List[Any] = []
    for script in page.soup.select(site.selectors['structured_data']):
        text = script.string or script.get_text()
        if not text or not text.strip():
            continue
        try:
            data = json.loads(text)
        except ValueError as e:
            records.append(OfferResult.rejected(
                ExtractionSource.STRUCTURED_DATA, f'invalid JSON-LD: {e}', {'text': text[:200]}
            ))
            continue
        for product in _product_nodes(data):
            records.extend(_offer_nodes(product.get('offers')))
    return records


def _seller_label(seller: Any) -> str:
    if isinstance(seller, dict):
        name = seller.get('name')
        return name if isinstance(name, str) else ''
    if isinstance(seller, list) and seller:
        return _seller_label(seller[0])
    if isinstance(seller, str):
        return seller
    return ''


def convert_structured_data(raw: Any, site: SiteConfig) -> OfferResult:
    """
    Convert a JSON-LD Offer.

    seller.name is "Marketplace/Seller"; without a slash it is the
    marketplace alone.
    """
    source = ExtractionSource.STRUCTURED_DATA
    if not isinstance(raw, dict):
        return OfferResult.rejected(source, 'offer is not an object', {'value': raw})

    price = parse_decimal(raw.get('price'))
    marketplace, seller_name = split_seller_label(_seller_label(raw.get('seller')))
    availability = str(raw.get('availability') or '')
    url = raw.get('url') if isinstance(raw.get('url'), str) else ''

    return validate_offer(
        source, raw, price, marketplace, site,
        seller_name=seller_name,
        product_link=url,
        in_stock='OutOfStock' not in availability,
    )


# ============================================================
# EMBEDDED VARIABLE
# ============================================================

def collect_embedded_variable(page: LoadedPage, site: SiteConfig) -> List[Any]:
    prices = page.embedded_prices
    if not isinstance(prices, list):
        return []
    return list(prices)


def convert_embedded_variable(raw: Any, site: SiteConfig) -> OfferResult:
    """
    Convert one embedded price entry.

    The entry names the marketplace (vdName) but never the seller.
    """
    source = ExtractionSource.EMBEDDED_VARIABLE
    if not isinstance(raw, dict):
        return OfferResult.rejected(source, 'entry is not an object', {'value': raw})

    value = raw.get('price')
    price = parse_display_price(value) if isinstance(value, str) else parse_decimal(value)
    marketplace = raw.get('vdName') if isinstance(raw.get('vdName'), str) else ''
    badge = raw.get('badge') if isinstance(raw.get('badge'), str) else ''
    url = raw.get('url') or raw.get('purl') or ''

    return validate_offer(
        source, raw, price, marketplace, site,
        product_link=url if isinstance(url, str) else '',
        badges=[badge.strip()] if badge.strip() else [],
    )


# ============================================================
# DOM HEURISTIC
# ============================================================

def collect_dom_heuristic(page: LoadedPage, site: SiteConfig) -> List[Any]:
    """One raw record per rendered seller row."""
    records = []
    for row in page.soup.select(site.seller_row_selector):
        marketplace = extract_marketplace(row)
        link = row.select_one('a[href]')
        records.append({
            'text': row.get_text(' ', strip=True),
            'marketplace': marketplace,
            'seller_name': extract_seller_name(row, site, marketplace),
            'url': link.get('href', '') if link else '',
        })
    return records


def convert_dom_heuristic(raw: Any, site: SiteConfig) -> OfferResult:
    source = ExtractionSource.DOM_HEURISTIC
    if not isinstance(raw, dict):
        return OfferResult.rejected(source, 'row is not an object', {'value': raw})
    return validate_offer(
        source, raw, extract_price(raw.get('text', '')), raw.get('marketplace', ''), site,
        seller_name=raw.get('seller_name', ''),
        product_link=raw.get('url', ''),
    )


Collector = Callable[[LoadedPage, SiteConfig], List[Any]]
Converter = Callable[[Any, SiteConfig], OfferResult]

SOURCES: Dict[ExtractionSource, Tuple[Collector, Converter]] = {
    ExtractionSource.STRUCTURED_DATA: (collect_structured_data, convert_structured_data),
    ExtractionSource.EMBEDDED_VARIABLE: (collect_embedded_variable, convert_embedded_variable),
    ExtractionSource.DOM_HEURISTIC: (collect_dom_heuristic, convert_dom_heuristic),
}


def rank_offers(source: ExtractionSource, offers: List[SellerOffer], site: SiteConfig) -> List[SellerOffer]:
    """
    Assign contiguous ranks starting at 1.

    Structured data offers are ordered by price first (stable for equal
    prices); the other sources keep page order. Rank 1 gets the cheapest
    badge except for the embedded source, which carries its own badges.
    """
    if source is ExtractionSource.STRUCTURED_DATA:
        offers = sorted(offers, key=lambda offer: offer.price)
    for rank, offer in enumerate(offers, start=1):
        offer.rank = rank
    if offers and source is not ExtractionSource.EMBEDDED_VARIABLE:
        if site.cheapest_badge not in offers[0].badges:
            offers[0].badges.insert(0, site.cheapest_badge)
    return offers


def run_source(source: ExtractionSource, page: LoadedPage, site: SiteConfig) -> List[OfferResult]:
    """
    Collect and convert every record of one source.

    Accepted results come first in rank order, followed by rejections.
    """
    collect, convert = SOURCES[source]
    results = []
    for raw in collect(page, site):
        results.append(raw if isinstance(raw, OfferResult) else convert(raw, site))

    accepted = [result for result in results if result.ok]
    rejected = [result for result in results if not result.ok]
    ranked = rank_offers(source, [result.offer for result in accepted], site)
    by_offer = {id(result.offer): result for result in accepted}
    return [by_offer[id(offer)] for offer in ranked] + rejected
