"""Classification and normalization helpers."""

from .classifier import derive_in_stock, determine_availability_status, is_pokemon_tcg_product
from .normalizer import build_cart_url, canonical_url, parse_price, slugify, to_price

__all__ = [
    "build_cart_url",
    "canonical_url",
    "derive_in_stock",
    "determine_availability_status",
    "is_pokemon_tcg_product",
    "parse_price",
    "slugify",
    "to_price",
]
