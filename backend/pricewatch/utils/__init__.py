"""Shared utilities for scrapers."""

from .normalizers import (
    format_price,
    parse_decimal,
    parse_display_price,
    normalize_url,
    normalize_product_name,
    normalize_seller_name,
)
from .extractors import (
    extract_product_id,
    is_valid_product_url,
    extract_price,
    extract_seller_name,
    extract_marketplace,
    split_seller_label,
)

__all__ = [
    'format_price',
    'parse_decimal',
    'parse_display_price',
    'normalize_url',
    'normalize_product_name',
    'normalize_seller_name',
    'extract_product_id',
    'is_valid_product_url',
    'extract_price',
    'extract_seller_name',
    'extract_marketplace',
    'split_seller_label',
]
