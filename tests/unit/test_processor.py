"""Unit tests for price normalization and product classification."""

from decimal import Decimal

import pytest

from restock.models.data_models import AvailabilityStatus
from restock.processor.classifier import (
    derive_in_stock,
    determine_availability_status,
    is_pokemon_tcg_product,
)
from restock.processor.normalizer import (
    absolute_url,
    build_cart_url,
    canonical_url,
    parse_price,
    slugify,
    to_price,
)


class TestParsePrice:

    @pytest.mark.parametrize("text,expected", [
        ("$29.99", Decimal("29.99")),
        ("Member's Mark $29.99", Decimal("29.99")),
        ("$29.99 - $39.99", Decimal("29.99")),
        ("Now $1,299.99", Decimal("1299.99")),
        ("$ 5", Decimal("5")),
        ("49.95", Decimal("49.95")),
        ("Pack of 3 for $12.00", Decimal("12.00")),
        ("", Decimal("0")),
        ("invalid", Decimal("0")),
        (None, Decimal("0")),
    ])
    def test_price_table(self, text, expected):
        assert parse_price(text) == expected


class TestToPrice:

    @pytest.mark.parametrize("value,expected", [
        (26.94, Decimal("26.94")),
        (30, Decimal("30")),
        ("$19.99", Decimal("19.99")),
        (Decimal("4.50"), Decimal("4.50")),
        (0, None),
        (None, None),
        (True, None),
        ("n/a", None),
        ({"amount": 5}, None),
    ])
    def test_api_values(self, value, expected):
        assert to_price(value) == expected


class TestUrls:

    def test_walmart_cart_url(self):
        assert build_cart_url("https://www.walmart.com/ip/123", "walmart") == \
            "https://www.walmart.com/ip/123?athbdg=L1600"

    def test_walmart_cart_url_with_query(self):
        assert build_cart_url("https://www.walmart.com/ip/123?sel=1", "walmart") == \
            "https://www.walmart.com/ip/123?sel=1&athbdg=L1600"

    @pytest.mark.parametrize("url,retailer", [
        ("https://www.target.com/p/x/-/A-1", "target"),
        ("https://www.walmart.com/cart", "walmart"),
        ("", "walmart"),
        (None, "walmart"),
    ])
    def test_no_cart_url(self, url, retailer):
        assert build_cart_url(url, retailer) is None

    def test_absolute_url(self):
        assert absolute_url("https://www.target.com", "/p/x") == "https://www.target.com/p/x"
        assert absolute_url("https://www.target.com", "https://cdn.example/x") == "https://cdn.example/x"
        assert absolute_url("https://www.target.com", "javascript:void(0)") is None
        assert absolute_url("https://www.target.com", None) is None

    def test_canonical_url_strips_query_and_fragment(self):
        assert canonical_url("https://WWW.Target.com/p/x/?preselect=1#reviews") == "https://www.target.com/p/x"

    def test_slugify(self):
        assert slugify("Pokemon TCG: Scarlet & Violet 151!") == "pokemon-tcg-scarlet-violet-151"
        assert slugify(None) == ""
        assert len(slugify("word " * 100)) <= 120


class TestPokemonTcgFilter:

    @pytest.mark.parametrize("name,extra,expected", [
        ("Pokemon TCG Booster Pack", "", True),
        ("Pokemon Video Game", "video game", False),
        ("Pokemon Plush Toy", "", False),
        ("Pokémon Trading Card Game: Elite Trainer Box", "", True),
        ("Scarlet & Violet Booster Bundle", "", True),
        ("Pokemon Collector Tin", "", True),
        ("Pokemon Card Sleeves", "Accessories", False),
        ("Pikachu Figure", "", False),
        ("Destination Guide", "", False),
        ("Martin Guitar Strings", "", False),
        (None, "", False),
    ])
    def test_filter_table(self, name, extra, expected):
        assert is_pokemon_tcg_product(name, extra) is expected

    def test_negative_keyword_in_category_wins(self):
        assert is_pokemon_tcg_product("Pokemon Booster Pack", "Toys") is False


class TestAvailability:

    @pytest.mark.parametrize("text,expected", [
        (None, True),
        ("", True),
        ("In stock", True),
        ("Out of stock", False),
        ("SOLD OUT online", False),
        ("Currently unavailable", False),
        ("Not available for shipping", False),
    ])
    def test_derive_in_stock(self, text, expected):
        assert derive_in_stock(text) is expected

    @pytest.mark.parametrize("in_stock,text,level,expected", [
        (False, None, None, AvailabilityStatus.OUT_OF_STOCK),
        (False, "pre-order", None, AvailabilityStatus.OUT_OF_STOCK),
        (True, None, None, AvailabilityStatus.IN_STOCK),
        (True, "pre-order", None, AvailabilityStatus.PRE_ORDER),
        (True, "Preorder now", None, AvailabilityStatus.PRE_ORDER),
        (True, "Discontinued", None, AvailabilityStatus.DISCONTINUED),
        (True, "limited stock", None, AvailabilityStatus.LOW_STOCK),
        (True, "Low stock", None, AvailabilityStatus.LOW_STOCK),
        (True, None, 3, AvailabilityStatus.LOW_STOCK),
        (True, None, 50, AvailabilityStatus.IN_STOCK),
        (True, None, 0, AvailabilityStatus.IN_STOCK),
    ])
    def test_status_table(self, in_stock, text, level, expected):
        assert determine_availability_status(in_stock, text, level) == expected
