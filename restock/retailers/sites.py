"""Site profiles for scraped storefronts."""

from typing import Dict

from restock.retailers.extraction import SiteProfile

TARGET = SiteProfile(
    slug="target",
    search_path="/s?searchTerm={query}",
    container_selectors=(
        'li[data-test="list-entry-product-card"]',
        'div[data-test="product-card"]',
        "div.h-padding-h-default",
    ),
    title_selectors=('a[data-test="product-title"]',),
    price_selectors=('[data-test="current-price"]',),
    original_price_selectors=('[data-test="was-price"]',),
    availability_selectors=('[data-test="fulfillment-availability"]',),
    shipping_selectors=('[data-test="fulfillment-shipping"]', '[data-test="arrival-date"]'),
    product_link_pattern=r"/p/",
    id_pattern=r"/p/[^/]+/(?:-/)?A?-?(\d+)",
    shipping_implies_stock=True,
)

GAMESTOP = SiteProfile(
    slug="gamestop",
    search_path="/search/?q={query}",
    container_selectors=(
        "div.product-grid-tile",
        "div.product-grid-item",
        "div.product-tile",
        "div.ProductCard",
        "li.grid-tile",
        "article[class*=product]",
    ),
    title_selectors=("a.product-name", "a.link-name", ".pd-name a", "a.product-tile-link"),
    price_selectors=(".actual-price", ".product-price", ".price"),
    original_price_selectors=(".strike-through", ".was-price"),
    availability_selectors=(".availability", "[data-qa=availability]"),
    product_link_pattern=r"/product/",
    id_pattern=r"/(\d{5,})\.html",
    id_attribute="data-pid",
)

COSTCO = SiteProfile(
    slug="costco",
    search_path="/CatalogSearch?keyword={query}&dept=All&pageSize=24",
    container_selectors=(".product-tile", ".product"),
    title_selectors=(".description a", "a.product-title"),
    price_selectors=(".price",),
    availability_selectors=(".product-availability", ".out-of-stock"),
    product_link_pattern=r"\.product\.",
    id_pattern=r"\.product\.(\d+)\.html",
    id_attribute="data-item-number",
)

SAMS_CLUB = SiteProfile(
    slug="sams-club",
    search_path="/search?searchTerm={query}",
    container_selectors=(".ProductTile", ".sc-product-card"),
    title_selectors=(".sc-product-card-title a", "a.sc-product-card-pdp-link", ".ProductTile a"),
    price_selectors=(".Price-group", ".sc-price", ".price"),
    availability_selectors=(".sc-product-card-availability", ".availability"),
    product_link_pattern=r"/p/",
    id_pattern=r"/p/[^/]+/(\w+)",
)

BARNES_NOBLE = SiteProfile(
    slug="barnes-noble",
    search_path="/s/{query}",
    container_selectors=("li.product-shelf-tile", "div.product-shelf-tile"),
    title_selectors=(".product-shelf-title a", "h3 a"),
    price_selectors=(".current", ".price"),
    original_price_selectors=(".previous",),
    availability_selectors=(".availability-msg", ".availability"),
    product_link_pattern=r"/w/",
    id_pattern=r"ean=(\d+)",
    quote_query_in_path=True,
)

AMAZON = SiteProfile(
    slug="amazon",
    search_path="/s?k={query}",
    container_selectors=('div.s-result-item[data-asin]:not([data-asin=""])',),
    title_selectors=("h2 a", "a.a-link-normal.s-link-style"),
    price_selectors=(".a-price .a-offscreen",),
    original_price_selectors=(".a-price.a-text-price .a-offscreen",),
    availability_selectors=(".a-color-price", ".a-size-base.a-color-secondary"),
    product_link_pattern=r"/dp/",
    id_pattern=r"/dp/([A-Z0-9]{10})",
    id_attribute="data-asin",
    enrich_from_product_page=False,
)

SITE_PROFILES: Dict[str, SiteProfile] = {
    profile.slug: profile
    for profile in (TARGET, GAMESTOP, COSTCO, SAMS_CLUB, BARNES_NOBLE, AMAZON)
}
