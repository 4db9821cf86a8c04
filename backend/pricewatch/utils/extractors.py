"""
Data extraction utilities for scrapers.

These functions pull product ids, prices and seller names out of URLs and
rendered seller rows.
"""

import re
from decimal import Decimal
from typing import List, Optional

from bs4 import Tag

from ..config import SiteConfig
from .normalizers import parse_display_price

# 54.999,00 TL / 899,90
PRICE_PATTERN = re.compile(r'(\d{1,3}(?:\.\d{3})*),(\d{2})\s*(?:TL)?')


def extract_product_id(url: str, site: SiteConfig) -> Optional[str]:
    """
    Extract the numeric product id from a product URL.

    Examples:
        https://www.akakce.com/cep-telefonu/en-ucuz-iphone-15-fiyati,123456.html -> 123456
    """
    if not url:
        return None
    match = re.search(site.product_id_pattern, url.split('?')[0].split('#')[0])
    return match.group(1) if match else None


def is_valid_product_url(url: str, site: SiteConfig) -> bool:
    """Check that a URL has the canonical product detail shape."""
    if not url:
        return False
    return site.host in url and ',' in url and url.endswith('.html')


def extract_price(text: str) -> Optional[Decimal]:
    """
    Extract the first Turkish display price from rendered text.

    Args:
        text: Row text, e.g. "Trendyol /CepHane 54.999,00 TL Satıcıya Git"

    Returns:
        Decimal price or None
    """
    if not text:
        return None
    match = PRICE_PATTERN.search(text)
    if not match:
        return None
    return parse_display_price(f"{match.group(1)},{match.group(2)}")


def clean_seller_candidate(text: str, site: SiteConfig) -> str:
    """Cut a "/SellerName" candidate at the first line break and known trailing phrases."""
    candidate = text.strip().split('\n')[0].strip()
    for token in site.cutoff_tokens:
        candidate = candidate.split(token)[0].strip()
    return candidate


def is_valid_seller_name(candidate: str, site: SiteConfig, marketplace: str = '') -> bool:
    """
    Validate a seller name read from rendered text.

    Rejects times, prices, stock/shipping phrases and anything outside
    2..49 characters.
    """
    if not candidate:
        return False
    if not 2 <= len(candidate) <= 49:
        return False
    if candidate[0].isdigit():
        return False
    if site.currency and re.search(rf'\b{re.escape(site.currency)}\b', candidate):
        return False
    folded = candidate.casefold()
    if any(token.casefold() in folded for token in site.noise_tokens):
        return False
    if marketplace and folded == marketplace.strip().casefold():
        return False
    return True


def extract_seller_name(row: Tag, site: SiteConfig, marketplace: str = '') -> str:
    """
    Find the "/SellerName" marker inside a rendered seller row.

    Looks first at elements inside links whose text starts with '/', then at
    the text after the first '/' of each link.

    Returns:
        Seller name, or '' when no valid candidate exists
    """
    for element in row.select('a span, a b, a > *'):
        text = element.get_text().strip()
        if text.startswith('/') and 1 < len(text) < 60:
            candidate = clean_seller_candidate(text[1:], site)
            if is_valid_seller_name(candidate, site, marketplace):
                return candidate

    for anchor in row.select('a[href]'):
        text = anchor.get_text()
        slash = text.find('/')
        if 0 < slash < len(text) - 1:
            candidate = clean_seller_candidate(text[slash + 1:], site)
            if is_valid_seller_name(candidate, site, marketplace):
                return candidate

    return ''


def extract_marketplace(row: Tag) -> str:
    """Marketplace name from the first logo's alt text."""
    img = row.select_one('img[alt]')
    if img is None:
        return ''
    return (img.get('alt') or '').strip()


def split_seller_label(label: str) -> List[str]:
    """
    Split a "Marketplace/Seller" label.

    Examples:
        "Pttavm/CepHane" -> ["Pttavm", "CepHane"]
        "Hepsiburada" -> ["Hepsiburada", ""]
        "/Orphan" -> ["/Orphan", ""]
    """
    label = (label or '').strip()
    slash = label.find('/')
    if slash > 0:
        return [label[:slash].strip(), label[slash + 1:].strip()]
    return [label, '']
