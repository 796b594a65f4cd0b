"""Product and availability classification rules."""

import re
from typing import Optional

from restock.models.data_models import AvailabilityStatus

TCG_KEYWORDS = (
    "pokemon",
    "pokémon",
    "tcg",
    "trading card",
    "booster",
    "elite trainer",
    "battle deck",
    "starter deck",
    "theme deck",
    "collection box",
    "tin",
    "premium collection",
)

NON_TCG_KEYWORDS = (
    "video game",
    "plush",
    "figure",
    "toy",
    "clothing",
    "accessory",
    "accessories",
    "keychain",
    "backpack",
    "lunch box",
)

OUT_OF_STOCK_PHRASES = (
    "out of stock",
    "sold out",
    "unavailable",
    "not available",
)

LOW_STOCK_MAX_LEVEL = 5


def _keyword_pattern(keywords) -> re.Pattern:
    alternatives = "|".join(re.escape(k) for k in keywords)
    return re.compile(rf"(?<!\w)(?:{alternatives})(?:e?s)?(?!\w)", re.IGNORECASE)


_TCG_PATTERN = _keyword_pattern(TCG_KEYWORDS)
_NON_TCG_PATTERN = _keyword_pattern(NON_TCG_KEYWORDS)


def is_pokemon_tcg_product(name: Optional[str], additional_text: str = "") -> bool:
    """
    Decide whether a listing is a Pokémon trading card product.

    A positive keyword must appear and no excluded keyword may appear;
    exclusions always win.
    """
    text = f"{name or ''} {additional_text or ''}"
    if _NON_TCG_PATTERN.search(text):
        return False
    return _TCG_PATTERN.search(text) is not None


def derive_in_stock(availability_text: Optional[str]) -> bool:
    """In-stock flag from storefront availability text; missing text counts as in stock."""
    if not availability_text:
        return True
    lowered = availability_text.lower()
    return not any(phrase in lowered for phrase in OUT_OF_STOCK_PHRASES)


def determine_availability_status(
    in_stock: bool,
    availability_text: Optional[str] = None,
    stock_level: Optional[int] = None
) -> AvailabilityStatus:
    """
    Map raw stock signals onto the shared availability enum.

    Order: out of stock, pre-order, discontinued, limited text, low stock
    level, in stock.
    """
    if not in_stock:
        return AvailabilityStatus.OUT_OF_STOCK

    text = (availability_text or "").lower()
    if "pre-order" in text or "preorder" in text:
        return AvailabilityStatus.PRE_ORDER
    if "discontinued" in text:
        return AvailabilityStatus.DISCONTINUED
    if "limited" in text or "low stock" in text:
        return AvailabilityStatus.LOW_STOCK

    if stock_level is not None and 0 < stock_level <= LOW_STOCK_MAX_LEVEL:
        return AvailabilityStatus.LOW_STOCK

    return AvailabilityStatus.IN_STOCK
