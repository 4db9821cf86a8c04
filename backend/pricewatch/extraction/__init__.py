"""Offer extraction from loaded product pages."""

from .page import LoadedPage
from .extractor import ProductExtractor, extract_product_details, NO_SELLERS_MESSAGE
from .enrichment import collect_seller_names, enrich_seller_names
from .sources import run_source, rank_offers

__all__ = [
    'LoadedPage',
    'ProductExtractor',
    'extract_product_details',
    'NO_SELLERS_MESSAGE',
    'collect_seller_names',
    'enrich_seller_names',
    'run_source',
    'rank_offers',
]
