"""Unit tests for storefront HTML extraction strategies."""

from decimal import Decimal

from bs4 import BeautifulSoup

from restock.retailers.extraction import (
    AnchorStrategy,
    ContainerStrategy,
    ListingProduct,
    build_strategies,
    dedupe,
    extract_listings,
    find_json_ld_product,
    iter_json_ld,
    parse_product_page,
    product_code_from_url,
    schema_availability_text,
)
from restock.retailers.sites import GAMESTOP, SITE_PROFILES, TARGET
from tests.fixtures.sample_data import GAMESTOP_ANCHOR_HTML, TARGET_SEARCH_HTML, product_page_html


class TestStrategies:

    def test_strategy_order_follows_profile(self):
        names = [s.name for s in build_strategies(TARGET)]

        assert names[:len(TARGET.container_selectors)] == [
            f"container:{selector}" for selector in TARGET.container_selectors
        ]
        assert names[-1] == "anchors"

    def test_container_strategy_reads_cards(self):
        soup = BeautifulSoup(TARGET_SEARCH_HTML, "html.parser")
        strategy = ContainerStrategy('li[data-test="list-entry-product-card"]')

        products = strategy.extract(soup, TARGET, "https://www.target.com")

        first = products[0]
        assert first.title == "Pokemon TCG: Scarlet & Violet 151 Booster Bundle"
        assert first.url == "https://www.target.com/p/pokemon-scarlet-violet-151-booster-bundle/-/A-88897899"
        assert first.price == Decimal("26.94")
        assert first.original_price == Decimal("29.99")
        assert first.product_code == "88897899"
        assert first.image_url == "https://target.scene7.com/is/image/Target/88897899"
        assert products[1].shipping_text == "Get it by Sat, Nov 2"

    def test_container_strategy_without_matches_is_empty(self):
        soup = BeautifulSoup(GAMESTOP_ANCHOR_HTML, "html.parser")
        assert ContainerStrategy("div.product-tile").extract(soup, GAMESTOP, "https://www.gamestop.com") == []

    def test_anchor_strategy_finds_product_links_and_nearby_price(self):
        soup = BeautifulSoup(GAMESTOP_ANCHOR_HTML, "html.parser")

        products = AnchorStrategy().extract(soup, GAMESTOP, "https://www.gamestop.com")

        assert [p.title for p in products] == ["Pokemon Booster Pack"]
        assert products[0].product_code == "20001111"

    def test_anchor_strategy_uses_title_attribute(self):
        html = '<div><a href="/product/x/20001111.html" title="Pokemon Booster Pack"></a> $4.99</div>'
        soup = BeautifulSoup(html, "html.parser")

        products = AnchorStrategy().extract(soup, GAMESTOP, "https://www.gamestop.com")

        assert products[0].title == "Pokemon Booster Pack"
        assert products[0].price == Decimal("4.99")


class TestExtractListings:

    def test_first_non_empty_strategy_wins_and_dedupes(self):
        products = extract_listings(TARGET_SEARCH_HTML, TARGET, "https://www.target.com")

        assert len(products) == 2
        assert products[0].product_code == "88897899"
        assert products[1].title == "Pokemon Pikachu Plush Toy"

    def test_falls_back_to_anchor_scan(self):
        html = """
        <div><a href="/p/pokemon-etb/-/A-89432659">Pokemon Elite Trainer Box</a><span>$59.99</span></div>
        """
        products = extract_listings(html, TARGET, "https://www.target.com")

        assert len(products) == 1
        assert products[0].price == Decimal("59.99")
        assert products[0].product_code == "89432659"

    def test_empty_page(self):
        assert extract_listings("<html><body>No results</body></html>", TARGET, "https://www.target.com") == []

    def test_dedupe_keeps_first_per_canonical_url(self):
        products = [
            ListingProduct(title="a", url="https://x.com/p/1?ref=a"),
            ListingProduct(title="b", url="https://x.com/p/1#top"),
            ListingProduct(title="c", url="https://x.com/p/2"),
        ]
        assert [p.title for p in dedupe(products)] == ["a", "c"]


class TestJsonLd:

    def test_iter_json_ld_flattens_graph(self):
        soup = BeautifulSoup(product_page_html(graph=True), "html.parser")
        types = [item.get("@type") for item in iter_json_ld(soup)]

        assert "Product" in types
        assert "BreadcrumbList" in types

    def test_invalid_json_ld_is_skipped(self):
        html = '<script type="application/ld+json">{not json</script>' + product_page_html()
        soup = BeautifulSoup(html, "html.parser")

        assert find_json_ld_product(soup)["sku"] == "88897899"

    def test_schema_availability_text(self):
        assert schema_availability_text("https://schema.org/InStock") == "In stock"
        assert schema_availability_text("http://schema.org/OutOfStock/") == "Out of stock"
        assert schema_availability_text("PreOrder") == "Pre-order"
        assert schema_availability_text("https://schema.org/Unknown") is None
        assert schema_availability_text(None) is None


class TestParseProductPage:

    def test_json_ld_fields(self):
        url = "https://www.target.com/p/x/-/A-88897899"
        details = parse_product_page(product_page_html(), TARGET, url)

        assert details.title == "Pokemon TCG: Scarlet & Violet 151 Booster Bundle"
        assert details.price == Decimal("26.94")
        assert details.availability_text == "In stock"
        assert details.product_code == "88897899"
        assert details.image_url == "https://target.scene7.com/is/image/Target/88897899"
        assert "jsonld" in details.signals
        assert "price" in details.signals

    def test_out_of_stock_from_schema(self):
        html = product_page_html(availability="https://schema.org/OutOfStock", with_cta=False)
        details = parse_product_page(html, TARGET, "https://www.target.com/p/x/-/A-1")

        assert details.availability_text == "Out of stock"

    def test_selector_fallback_without_json_ld(self):
        html = """
        <html><body><h1>Pokemon Booster Pack</h1>
        <span class="actual-price">$4.99</span><div class="availability">Sold out</div></body></html>
        """
        details = parse_product_page(html, GAMESTOP, "https://www.gamestop.com/product/x/20001111.html")

        assert details.title == "Pokemon Booster Pack"
        assert details.price == Decimal("4.99")
        assert details.availability_text == "Sold out"
        assert details.product_code == "20001111"
        assert details.signals == ["price"]


def test_product_code_from_url():
    assert product_code_from_url("https://www.target.com/p/x/-/A-88897899", TARGET) == "88897899"
    assert product_code_from_url("https://www.target.com/c/cards", TARGET) is None


def test_every_site_profile_is_keyed_by_slug():
    assert all(slug == profile.slug for slug, profile in SITE_PROFILES.items())
    assert {"target", "gamestop", "costco", "sams-club"} <= set(SITE_PROFILES)
