"""HTML extraction for scraped storefronts.

Search result pages are parsed by an ordered list of strategies: one per
card container selector from the site profile, then a scan of product-link
anchors. The first strategy yielding products wins. Everything here is pure:
HTML in, dataclasses out.
"""

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple

from bs4 import BeautifulSoup, Tag

from restock.processor.normalizer import absolute_url, canonical_url, parse_price

NEARBY_PRICE = re.compile(r"\$\s*([0-9]+(?:\.[0-9]{2})?)")

SCHEMA_AVAILABILITY = {
    "instock": "In stock",
    "instoreonly": "In stock",
    "onlineonly": "In stock",
    "limitedavailability": "Limited stock",
    "outofstock": "Out of stock",
    "soldout": "Sold out",
    "preorder": "Pre-order",
    "presale": "Pre-order",
    "discontinued": "Discontinued",
}


@dataclass(frozen=True)
class SiteProfile:
    """Everything site-specific about a scraped storefront."""
    slug: str
    search_path: str  # format string with {query}
    container_selectors: Tuple[str, ...]
    title_selectors: Tuple[str, ...]
    price_selectors: Tuple[str, ...] = ()
    original_price_selectors: Tuple[str, ...] = ()
    availability_selectors: Tuple[str, ...] = ()
    shipping_selectors: Tuple[str, ...] = ()
    product_link_pattern: str = r"/p/"
    id_pattern: Optional[str] = None
    id_attribute: Optional[str] = None
    shipping_implies_stock: bool = False
    enrich_from_product_page: bool = True
    health_path: str = "/"
    quote_query_in_path: bool = False


@dataclass
class ListingProduct:
    """One product card found on a search result page."""
    title: str
    url: str
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    availability_text: Optional[str] = None
    shipping_text: Optional[str] = None
    product_code: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class ProductDetails:
    """Fields read from a product detail page."""
    title: Optional[str] = None
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    availability_text: Optional[str] = None
    product_code: Optional[str] = None
    image_url: Optional[str] = None
    shipping_text: Optional[str] = None
    signals: List[str] = field(default_factory=list)


class ExtractionStrategy(Protocol):
    name: str

    def extract(self, soup: BeautifulSoup, profile: SiteProfile, base_url: str) -> List[ListingProduct]:
        ...


def _clean(text: Any) -> Optional[str]:
    if not isinstance(text, str):
        return None
    text = " ".join(text.split())
    return text or None


def _select_text(node: Tag, selectors: Tuple[str, ...]) -> Optional[str]:
    for selector in selectors:
        found = node.select_one(selector)
        if found is not None:
            text = _clean(found.get_text(" ", strip=True))
            if text:
                return text
    return None


def _price(node: Tag, selectors: Tuple[str, ...]) -> Optional[Decimal]:
    text = _select_text(node, selectors)
    if text is None:
        return None
    value = parse_price(text)
    return value if value > 0 else None


def _anchor_title(anchor: Tag) -> Optional[str]:
    return (
        _clean(anchor.get_text(" ", strip=True))
        or _clean(anchor.get("title"))
        or _clean(anchor.get("aria-label"))
    )


def _image(node: Tag, base_url: str) -> Optional[str]:
    img = node.find("img")
    if img is None:
        return None
    return absolute_url(base_url, img.get("src") or img.get("data-src"))


def product_code_from_url(url: str, profile: SiteProfile) -> Optional[str]:
    if not profile.id_pattern:
        return None
    match = re.search(profile.id_pattern, url)
    return match.group(1) if match else None


class ContainerStrategy:
    """Parse product cards matched by one container selector."""

    def __init__(self, selector: str):
        self.selector = selector
        self.name = f"container:{selector}"

    def extract(self, soup: BeautifulSoup, profile: SiteProfile, base_url: str) -> List[ListingProduct]:
        link_pattern = re.compile(profile.product_link_pattern)
        products = []
        for card in soup.select(self.selector):
            anchor = None
            for selector in profile.title_selectors:
                anchor = card.select_one(selector)
                if anchor is not None:
                    break
            if anchor is None:
                anchor = card.find("a", href=link_pattern)
            if anchor is None:
                continue

            link = anchor if anchor.name == "a" else anchor.find_parent("a") or anchor.find("a")
            url = absolute_url(base_url, link.get("href")) if link is not None else None
            title = _anchor_title(anchor)
            if not url or not title:
                continue

            code = card.get(profile.id_attribute) if profile.id_attribute else None
            products.append(ListingProduct(
                title=title,
                url=url,
                price=_price(card, profile.price_selectors),
                original_price=_price(card, profile.original_price_selectors),
                availability_text=_select_text(card, profile.availability_selectors),
                shipping_text=_select_text(card, profile.shipping_selectors),
                product_code=code or product_code_from_url(url, profile),
                image_url=_image(card, base_url),
            ))
        return products


class AnchorStrategy:
    """Fallback: any anchor whose href looks like a product page."""

    name = "anchors"

    # How many ancestors to climb looking for a price near the link
    max_depth = 3

    def _nearby_price(self, anchor: Tag) -> Optional[Decimal]:
        node = anchor
        for _ in range(self.max_depth):
            node = node.parent
            if node is None:
                return None
            match = NEARBY_PRICE.search(node.get_text(" ", strip=True))
            if match:
                return Decimal(match.group(1))
        return None

    def extract(self, soup: BeautifulSoup, profile: SiteProfile, base_url: str) -> List[ListingProduct]:
        link_pattern = re.compile(profile.product_link_pattern)
        products = []
        for anchor in soup.find_all("a", href=link_pattern):
            url = absolute_url(base_url, anchor.get("href"))
            title = _anchor_title(anchor)
            if not url or not title:
                continue
            products.append(ListingProduct(
                title=title,
                url=url,
                price=self._nearby_price(anchor),
                product_code=product_code_from_url(url, profile),
            ))
        return products


def build_strategies(profile: SiteProfile) -> List[ExtractionStrategy]:
    strategies: List[ExtractionStrategy] = [ContainerStrategy(s) for s in profile.container_selectors]
    strategies.append(AnchorStrategy())
    return strategies


def dedupe(products: List[ListingProduct]) -> List[ListingProduct]:
    """Keep the first listing per canonical URL."""
    seen = set()
    unique = []
    for product in products:
        key = canonical_url(product.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(product)
    return unique


def extract_listings(html: str, profile: SiteProfile, base_url: str) -> List[ListingProduct]:
    """Run the strategies in order and return the first non-empty result, de-duplicated."""
    soup = BeautifulSoup(html, "html.parser")
    for strategy in build_strategies(profile):
        products = strategy.extract(soup, profile, base_url)
        if products:
            return dedupe(products)
    return []


def iter_json_ld(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening lists and @graph."""
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except ValueError:
            continue
        stack = [data]
        while stack:
            item = stack.pop(0)
            if isinstance(item, list):
                stack.extend(item)
            elif isinstance(item, dict):
                yield item
                if isinstance(item.get("@graph"), list):
                    stack.extend(item["@graph"])


def _is_product(item: Dict[str, Any]) -> bool:
    kind = item.get("@type")
    if isinstance(kind, list):
        return "Product" in kind
    return kind == "Product"


def find_json_ld_product(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    for item in iter_json_ld(soup):
        if _is_product(item):
            return item
    return None


def _first_offer(product: Dict[str, Any]) -> Dict[str, Any]:
    offers = product.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if isinstance(offers, dict):
        return offers
    return {}


def schema_availability_text(value: Optional[str]) -> Optional[str]:
    """Map a schema.org availability URL to display text."""
    if not value:
        return None
    key = value.rstrip("/").rsplit("/", 1)[-1].lower()
    return SCHEMA_AVAILABILITY.get(key)


def parse_product_page(html: str, profile: SiteProfile, url: str) -> ProductDetails:
    """Read price, availability and identifiers from a product detail page."""
    soup = BeautifulSoup(html, "html.parser")
    details = ProductDetails()

    product = find_json_ld_product(soup)
    if product is not None:
        details.signals.append("jsonld")
        details.title = _clean(product.get("name"))
        details.product_code = str(product.get("sku") or product.get("productID") or "") or None
        offer = _first_offer(product)
        price = offer.get("price") or offer.get("lowPrice")
        if price is not None:
            value = parse_price(str(price))
            details.price = value if value > 0 else None
        details.availability_text = schema_availability_text(offer.get("availability"))
        image = product.get("image")
        if isinstance(image, list):
            image = image[0] if image else None
        if isinstance(image, str):
            details.image_url = image

    if details.price is None:
        details.price = _price(soup, profile.price_selectors)
    if details.price is not None:
        details.signals.append("price")

    details.original_price = _price(soup, profile.original_price_selectors)
    if details.availability_text is None:
        details.availability_text = _select_text(soup, profile.availability_selectors)
    details.shipping_text = _select_text(soup, profile.shipping_selectors)
    if details.title is None:
        heading = soup.find("h1")
        details.title = _clean(heading.get_text(" ", strip=True)) if heading else None
    if details.product_code is None:
        details.product_code = product_code_from_url(url, profile)
    return details
