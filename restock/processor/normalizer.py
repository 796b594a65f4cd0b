"""Normalization helpers for prices and retailer URLs.

Scraped and API data arrive as loosely formatted strings and numbers. These
helpers turn them into ``Decimal`` prices and canonical URLs without ever
raising on malformed input.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

DOLLAR_AMOUNT = re.compile(r"\$\s*(\d[\d,]*(?:\.\d+)?)")
BARE_AMOUNT = re.compile(r"(\d[\d,]*(?:\.\d+)?)")

WALMART_CART_BADGE = "athbdg=L1600"

MAX_SLUG_LENGTH = 120


def _to_decimal(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None


def parse_price(text: Optional[str]) -> Decimal:
    """
    Extract a price from free text.

    The first ``$``-prefixed amount wins; otherwise the first bare number is
    used. Thousands separators are tolerated.

    Args:
        text: Raw price text, e.g. "Now $1,299.99"

    Returns:
        Decimal price, or Decimal("0") when no amount is present
    """
    if not text:
        return Decimal("0")

    for pattern in (DOLLAR_AMOUNT, BARE_AMOUNT):
        match = pattern.search(text)
        if match:
            value = _to_decimal(match.group(1))
            if value is not None:
                return value

    return Decimal("0")


def to_price(value: Any) -> Optional[Decimal]:
    """
    Convert an API price field to Decimal.

    Numbers are converted through ``str`` to keep their printed precision.
    Strings go through ``parse_price``. Missing or zero values become None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        price = value
    elif isinstance(value, (int, float)):
        price = Decimal(str(value))
    elif isinstance(value, str):
        price = parse_price(value)
    else:
        return None
    return price if price > 0 else None


def build_cart_url(product_url: Optional[str], retailer_id: str) -> Optional[str]:
    """
    Derive an add-to-cart link from a product URL.

    Only Walmart supports a direct cart deep link. Empty URLs and URLs that
    already point at a cart page yield None.
    """
    if not product_url:
        return None
    if "/cart" in urlsplit(product_url).path:
        return None
    if retailer_id == "walmart":
        separator = "&" if "?" in product_url else "?"
        return f"{product_url}{separator}{WALMART_CART_BADGE}"
    return None


def absolute_url(base_url: str, href: Optional[str]) -> Optional[str]:
    if not href:
        return None
    href = href.strip()
    if href.startswith(("javascript:", "mailto:", "#")):
        return None
    return urljoin(base_url + "/", href)


def canonical_url(url: str) -> str:
    """Strip query string and fragment, used to de-duplicate listings."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc.lower(), parts.path.rstrip("/") or "/", "", ""))


def slugify(text: Optional[str]) -> str:
    """Lowercase, collapse non-alphanumerics to dashes, trim to 120 characters."""
    if not text:
        return ""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].strip("-")
