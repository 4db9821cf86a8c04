"""
Tests for multi-source offer extraction.
"""

from decimal import Decimal

import pytest

from pricewatch.base import ExtractionSource, FailureKind, ProductListing, SellerOffer
from pricewatch.config import get_site_config
from pricewatch.extraction import (
    LoadedPage,
    NO_SELLERS_MESSAGE,
    ProductExtractor,
    collect_seller_names,
    enrich_seller_names,
    extract_product_details,
    run_source,
)

from conftest import PRODUCT_URL, json_ld, ld_offer, product_html, seller_row

SITE = get_site_config('akakce')


def loaded_page(embedded=None, title="iPhone 15 128 GB Fiyatları | Akakçe", **kwargs) -> LoadedPage:
    return LoadedPage(
        url=PRODUCT_URL,
        title=title,
        html=product_html(title=title, **kwargs),
        embedded_prices=embedded,
    )


@pytest.fixture
def extractor():
    return ProductExtractor(SITE)


class TestStructuredData:
    """Test the JSON-LD source."""

    def test_marketplace_and_seller_split(self, extractor):
        page = loaded_page(structured=json_ld([ld_offer("54999.00", "Pttavm/CepHane", "https://www.pttavm.com/x")]))

        listing = extractor.extract(page)

        assert listing.is_success
        assert listing.source is ExtractionSource.STRUCTURED_DATA
        offer = listing.sellers[0]
        assert offer.rank == 1
        assert offer.marketplace == "Pttavm"
        assert offer.seller_name == "CepHane"
        assert offer.price == Decimal("54999.00")
        assert offer.price_formatted == "54.999,00 TL"
        assert offer.product_link == "https://www.pttavm.com/x"
        assert offer.badges == ["En Ucuz"]
        assert offer.source is ExtractionSource.STRUCTURED_DATA

    def test_offers_ranked_by_price(self, extractor):
        page = loaded_page(structured=json_ld([
            ld_offer("60000", "Amazon"),
            ld_offer("50000", "Trendyol/Depo"),
            ld_offer("55000", "n11/Shop"),
            ld_offer("55000", "Hepsiburada/Market"),
        ]))

        listing = extractor.extract(page)

        assert [offer.rank for offer in listing.sellers] == [1, 2, 3, 4]
        assert [offer.marketplace for offer in listing.sellers] == ["Trendyol", "n11", "Hepsiburada", "Amazon"]
        assert [offer.badges for offer in listing.sellers] == [["En Ucuz"], [], [], []]
        assert listing.lowest_price == "50.000,00 TL"
        assert listing.highest_price == "60.000,00 TL"

    def test_invalid_offers_rejected(self, extractor):
        page = loaded_page(structured=json_ld([
            ld_offer("0", "Amazon"),
            ld_offer("abc", "Trendyol"),
            ld_offer("100", ""),
            ld_offer("-5", "n11"),
            ld_offer("899.90", "Pttavm/CepHane"),
        ]))

        listing = extractor.extract(page)

        assert listing.seller_count == 1
        assert listing.sellers[0].marketplace == "Pttavm"
        reasons = [result.error for result in listing.rejected_offers]
        assert len(reasons) == 4
        assert "missing or unparseable price" in reasons
        assert "empty marketplace" in reasons
        assert any(reason.startswith("non-positive price") for reason in reasons)
        assert all(offer.price > 0 and offer.marketplace for offer in listing.sellers)

    def test_price_too_large_to_format_rejected(self, extractor):
        page = loaded_page(structured=json_ld([
            ld_offer("1" + "0" * 30, "Amazon"),
            ld_offer("899.90", "Pttavm/CepHane"),
        ]))

        listing = extractor.extract(page)

        assert listing.is_success
        assert [offer.marketplace for offer in listing.sellers] == ["Pttavm"]
        assert [result.error for result in listing.rejected_offers] == [f"price out of range {Decimal('1' + '0' * 30)}"]

    def test_plain_offer_list(self, extractor):
        page = loaded_page(structured=json_ld([ld_offer(1500, "Amazon")], aggregate=False))

        listing = extractor.extract(page)

        assert listing.sellers[0].price == Decimal("1500")
        assert listing.sellers[0].seller_name == ""

    def test_graph_document(self, extractor):
        document = {
            "@context": "https://schema.org",
            "@graph": [
                {"@type": "BreadcrumbList", "itemListElement": []},
                json_ld([ld_offer("1299.90", "Hepsiburada/TeknoMarket")]),
            ],
        }
        listing = extractor.extract(loaded_page(structured=document))

        assert listing.seller_count == 1
        assert listing.sellers[0].seller_name == "TeknoMarket"

    def test_out_of_stock(self, extractor):
        offer = ld_offer("100", "Amazon")
        offer["availability"] = "https://schema.org/OutOfStock"
        listing = extractor.extract(loaded_page(structured=json_ld([offer])))

        assert listing.sellers[0].in_stock is False

    def test_invalid_json_falls_back(self, extractor):
        page = loaded_page(raw_ld="{not json", embedded=[{"vdName": "Trendyol", "price": 100}])

        listing = extractor.extract(page)

        assert listing.source is ExtractionSource.EMBEDDED_VARIABLE
        assert listing.rejected_offers[0].source is ExtractionSource.STRUCTURED_DATA
        assert listing.rejected_offers[0].error.startswith("invalid JSON-LD")


class TestEmbeddedVariable:
    """Test the embedded price list source."""

    def test_fallback_keeps_every_entry(self, extractor):
        embedded = [
            {"vdName": "Trendyol", "price": "54.999,00", "badge": "En Ucuz"},
            {"vdName": "Hepsiburada", "price": 55999.5, "badge": ""},
            {"vdName": "Amazon", "price": "56.499,00 TL", "badge": "Hızlı Kargo"},
        ]
        listing = extractor.extract(loaded_page(embedded=embedded))

        assert listing.source is ExtractionSource.EMBEDDED_VARIABLE
        assert listing.seller_count == 3
        assert [offer.rank for offer in listing.sellers] == [1, 2, 3]
        assert [offer.price for offer in listing.sellers] == [
            Decimal("54999.00"), Decimal("55999.5"), Decimal("56499.00"),
        ]
        assert [offer.badges for offer in listing.sellers] == [["En Ucuz"], [], ["Hızlı Kargo"]]

    def test_structured_data_wins(self, extractor):
        page = loaded_page(
            structured=json_ld([ld_offer("100", "Amazon")]),
            embedded=[{"vdName": "Trendyol", "price": 50}, {"vdName": "n11", "price": 60}],
        )

        listing = extractor.extract(page)

        assert listing.source is ExtractionSource.STRUCTURED_DATA
        assert [offer.marketplace for offer in listing.sellers] == ["Amazon"]

    def test_all_entries_invalid(self, extractor):
        page = loaded_page(embedded=[{"vdName": "", "price": 10}, "junk"])

        listing = extractor.extract(page)

        assert not listing.is_success
        assert len(listing.rejected_offers) == 2


class TestDomHeuristic:
    """Test the rendered seller row source."""

    def test_rows(self, extractor):
        page = loaded_page(rows=[
            seller_row("Pttavm", "CepHane", "54.999,00 TL", href="/c/?r=1"),
            seller_row("Amazon", "", "55.499,00 TL", href="/c/?r=2"),
        ])

        listing = extractor.extract(page)

        assert listing.source is ExtractionSource.DOM_HEURISTIC
        assert [offer.marketplace for offer in listing.sellers] == ["Pttavm", "Amazon"]
        assert [offer.seller_name for offer in listing.sellers] == ["CepHane", ""]
        assert listing.sellers[0].price == Decimal("54999.00")
        assert listing.sellers[0].product_link == "https://www.akakce.com/c/?r=1"
        assert listing.sellers[0].badges == ["En Ucuz"]

    def test_row_without_price_rejected(self, extractor):
        page = loaded_page(rows=[seller_row("Pttavm", "CepHane", "Tükendi")])

        listing = extractor.extract(page)

        assert listing.failure_kind is FailureKind.EXTRACTION_EMPTY
        assert listing.rejected_offers[0].source is ExtractionSource.DOM_HEURISTIC


class TestEmptyExtraction:
    """Test pages where no source yields an offer."""

    def test_no_sources(self, extractor):
        listing = extractor.extract(loaded_page())

        assert not listing.is_success
        assert listing.failure_kind is FailureKind.EXTRACTION_EMPTY
        assert listing.error_message == NO_SELLERS_MESSAGE
        assert listing.sellers == []
        assert listing.lowest_price == ""
        assert listing.highest_price == ""
        assert listing.source is None

    def test_run_source_without_data(self):
        assert run_source(ExtractionSource.EMBEDDED_VARIABLE, loaded_page(), SITE) == []


class TestEnrichment:
    """Test positional seller name enrichment."""

    def test_fills_missing_names(self, extractor):
        page = loaded_page(
            structured=json_ld([ld_offer("54999", "Pttavm/CepHane"), ld_offer("56000", "Trendyol")]),
            rows=[seller_row("Pttavm", "Other"), seller_row("Trendyol", "TeknoMarket")],
        )

        listing = extractor.extract(page)

        assert [offer.seller_name for offer in listing.sellers] == ["CepHane", "TeknoMarket"]

    def test_denylisted_row_text_ignored(self, extractor):
        page = loaded_page(
            structured=json_ld([ld_offer("100", "Amazon")]),
            rows=[seller_row("Amazon", "Kargo Bedava")],
        )

        listing = extractor.extract(page)

        assert listing.sellers[0].seller_name == ""

    def test_collect_seller_names(self):
        page = loaded_page(rows=[
            seller_row("Pttavm", "CepHane"),
            seller_row("Amazon"),
            seller_row("n11", "btkurumsal"),
        ])

        assert collect_seller_names(page, SITE) == ["CepHane", "", "btkurumsal"]

    def test_never_overwrites(self):
        offers = [
            SellerOffer(rank=1, marketplace="Pttavm", price=Decimal("1"), price_formatted="1,00 TL", seller_name="CepHane"),
            SellerOffer(rank=2, marketplace="Amazon", price=Decimal("2"), price_formatted="2,00 TL"),
            SellerOffer(rank=3, marketplace="n11", price=Decimal("3"), price_formatted="3,00 TL"),
        ]

        assert enrich_seller_names(offers, ["Other", "Depo"]) == 1
        assert [offer.seller_name for offer in offers] == ["CepHane", "Depo", ""]

        assert enrich_seller_names(offers, ["Other", "Changed", "Late"]) == 1
        assert [offer.seller_name for offer in offers] == ["CepHane", "Depo", "Late"]

        assert enrich_seller_names(offers, ["A", "B", "C"]) == 0


class TestProductDetails:
    """Test name and image extraction."""

    def test_name_and_image(self):
        page = loaded_page()
        listing = extract_product_details(page, ProductListing(url=page.url), SITE)

        assert listing.name == "iPhone 15 128 GB"
        assert listing.image_url == "https://cdn.akakce.com/iphone-15.jpg"

    def test_challenge_title_ignored(self):
        page = loaded_page(title="Just a moment...", image="")
        listing = extract_product_details(page, ProductListing(url=page.url), SITE)

        assert listing.name == ""
        assert listing.image_url == ""

    def test_title_read_from_markup(self):
        page = LoadedPage(url=PRODUCT_URL, html=product_html(title="Galaxy S24 Fiyatları | Akakçe"))
        listing = extract_product_details(page, ProductListing(url=page.url), SITE)

        assert listing.name == "Galaxy S24"
