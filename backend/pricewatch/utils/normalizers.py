"""
Data normalization utilities for scrapers.

These functions standardize scraped prices, URLs and titles into consistent
formats.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional


def format_price(price: Decimal, currency: str = 'TL') -> str:
    """
    Format a price with Turkish grouping and a trailing currency marker.

    Examples:
        54999 -> 54.999,00 TL
        1234567.5 -> 1.234.567,50 TL
        89.9 -> 89,90 TL
        0.125 -> 0,13 TL

    Raises:
        InvalidOperation: If the price has too many digits to show in kuruş
    """
    quantized = Decimal(price).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    grouped = f"{quantized:,.2f}"
    # Swap separators: 54,999.00 -> 54.999,00
    localized = grouped.replace(',', '\x00').replace('.', ',').replace('\x00', '.')
    return f"{localized} {currency}" if currency else localized


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a machine-formatted number (JSON number or "54999.00").

    Returns None for missing or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result


def parse_display_price(text: Any) -> Optional[Decimal]:
    """
    Parse a Turkish display price.

    Examples:
        "54.999,00 TL" -> 54999.00
        "1.299,90" -> 1299.90
        "899" -> 899
    """
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        return parse_decimal(text)
    if not isinstance(text, str):
        return None
    cleaned = re.sub(r'(?i)\s*(tl|₺)\s*$', '', text.strip())
    cleaned = cleaned.replace(' ', '').replace('.', '').replace(',', '.')
    return parse_decimal(cleaned)


def normalize_url(url: Optional[str], base_url: str) -> str:
    """
    Make a link absolute.

    Examples:
        //cdn.akakce.com/x.jpg -> https://cdn.akakce.com/x.jpg
        /c/?p=1 -> https://www.akakce.com/c/?p=1
    """
    if not url:
        return ''
    url = url.strip()
    if url.startswith('//'):
        return 'https:' + url
    if url.startswith('/'):
        return base_url.rstrip('/') + url
    return url


def normalize_product_name(title: str) -> str:
    """
    Strip site suffixes from a product page title.

    Examples:
        "iPhone 15 128 GB Fiyatları | Akakçe" -> "iPhone 15 128 GB"
    """
    if not title:
        return ''
    name = ' '.join(title.split())
    if ' | ' in name:
        name = name.split(' | ')[0].strip()
    if ' Fiyatları' in name:
        name = name.split(' Fiyatları')[0].strip()
    return name


def normalize_seller_name(name: Optional[str]) -> str:
    """Collapse whitespace in a seller or marketplace name."""
    if not name:
        return ''
    return ' '.join(name.split())
