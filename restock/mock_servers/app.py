"""FastAPI mock retailers for integration testing.

Three apps mirror the upstreams the adapters talk to: a Best Buy style
products API, a Walmart style affiliate API and a Target style HTML
storefront. Each one can inject failures, either randomly through
``error_rate`` or for every request by setting ``app.state.fail_status``.
"""

import asyncio
import html
import json
import random
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse


def sample_catalog() -> List[Dict]:
    """Pokemon TCG products shared by all mock retailers."""
    return [
        {
            "sku": "6545227",
            "item_id": "556789012",
            "tcin": "88897899",
            "upc": "820650853425",
            "name": "Pokemon TCG: Scarlet & Violet 151 Booster Bundle",
            "price": 26.94,
            "regular_price": 29.99,
            "in_stock": True,
            "pre_order": False,
        },
        {
            "sku": "6559301",
            "item_id": "556789013",
            "tcin": "89432659",
            "upc": "820650854743",
            "name": "Pokemon TCG: Paldean Fates Elite Trainer Box",
            "price": 59.99,
            "regular_price": 59.99,
            "in_stock": False,
            "pre_order": False,
        },
        {
            "sku": "6572110",
            "item_id": "556789014",
            "tcin": "90123456",
            "upc": "820650856020",
            "name": "Pokemon TCG: Prismatic Evolutions Booster Pack",
            "price": 5.49,
            "regular_price": 5.49,
            "in_stock": True,
            "pre_order": True,
        },
        {
            "sku": "6499000",
            "item_id": "556789099",
            "tcin": "80000001",
            "upc": "820650800000",
            "name": "Pokemon Pikachu Plush Toy",
            "price": 19.99,
            "regular_price": 19.99,
            "in_stock": True,
            "pre_order": False,
        },
    ]


def sample_stores() -> List[Dict]:
    return [
        {
            "id": "1234",
            "name": "Mission Bay",
            "address": "1717 Harrison St",
            "city": "San Francisco",
            "state": "CA",
            "postal_code": "94103",
            "phone": "415-555-0100",
            "distance": 1.2,
            "low_stock": True,
        },
        {
            "id": "5678",
            "name": "Daly City",
            "address": "2 Colma Blvd",
            "city": "Colma",
            "state": "CA",
            "postal_code": "94014",
            "phone": None,
            "distance": 8.4,
            "low_stock": False,
        },
    ]


def _matches(product: Dict, query: str) -> bool:
    """Any query word of three or more letters appearing in the product name."""
    name = product["name"].lower()
    words = [w for w in query.lower().split() if len(w) >= 3]
    return any(w in name for w in words)


def _install_failure_injection(
    app: FastAPI,
    error_rate: float,
    extra_latency_ms: int,
    random_seed: Optional[int]
) -> None:
    rng = random.Random(random_seed)
    app.state.fail_status = None
    app.state.request_count = 0

    @app.middleware("http")
    async def inject_failures(request: Request, call_next):
        app.state.request_count += 1
        if extra_latency_ms > 0:
            await asyncio.sleep(extra_latency_ms / 1000.0)
        if app.state.fail_status is not None:
            return JSONResponse({"detail": "Injected failure"}, status_code=app.state.fail_status)
        if rng.random() < error_rate:
            return JSONResponse({"detail": "Simulated error"}, status_code=rng.choice([500, 502, 503]))
        return await call_next(request)


def create_bestbuy_app(
    catalog: Optional[List[Dict]] = None,
    stores: Optional[List[Dict]] = None,
    api_key: str = "test-key",
    error_rate: float = 0.0,
    extra_latency_ms: int = 0,
    random_seed: Optional[int] = None
) -> FastAPI:
    """
    Best Buy style products API under ``/v1``.

    Requests without the expected ``apikey`` query parameter get a 403.
    """
    app = FastAPI(title="Mock API - best-buy")
    _install_failure_injection(app, error_rate, extra_latency_ms, random_seed)
    products = catalog if catalog is not None else sample_catalog()
    store_list = stores if stores is not None else sample_stores()

    def check_key(apikey: Optional[str]) -> None:
        if apikey != api_key:
            raise HTTPException(status_code=403, detail="Invalid API key")

    def to_product(p: Dict) -> Dict:
        return {
            "sku": int(p["sku"]),
            "name": p["name"],
            "salePrice": p["price"],
            "regularPrice": p["regular_price"],
            "onlineAvailability": p["in_stock"],
            "inStoreAvailability": p["in_stock"],
            "orderable": "PreOrder" if p["pre_order"] else "Available",
            "url": f"https://www.bestbuy.com/site/{p['sku']}.p?skuId={p['sku']}",
            "addToCartUrl": f"https://api.bestbuy.com/click/-/{p['sku']}/cart",
            "upc": p["upc"],
            "categoryPath": [{"name": "Collectibles"}, {"name": "Trading Card Games"}],
        }

    @app.get("/v1/products")
    async def list_products(
        apikey: Optional[str] = None,
        upc: Optional[str] = None,
        q: Optional[str] = None,
        pageSize: int = 10
    ):
        check_key(apikey)
        matched = products
        if upc:
            matched = [p for p in matched if p["upc"] == upc]
        if q:
            matched = [p for p in matched if _matches(p, q)]
        page = [to_product(p) for p in matched[:pageSize]]
        return {"from": 1, "to": len(page), "total": len(matched), "products": page}

    @app.get("/v1/products/{sku}")
    async def get_product(sku: str, apikey: Optional[str] = None):
        check_key(apikey)
        for p in products:
            if p["sku"] == sku:
                return to_product(p)
        raise HTTPException(status_code=404, detail=f"SKU {sku} not found")

    @app.get("/v1/products/{sku}/stores")
    async def get_stores(sku: str, apikey: Optional[str] = None, area: Optional[str] = None):
        check_key(apikey)
        product = next((p for p in products if p["sku"] == sku), None)
        if product is None:
            raise HTTPException(status_code=404, detail=f"SKU {sku} not found")
        if not product["in_stock"]:
            return {"ispuEligible": True, "stores": []}
        return {
            "ispuEligible": True,
            "stores": [
                {
                    "storeID": s["id"],
                    "name": s["name"],
                    "address": s["address"],
                    "city": s["city"],
                    "state": s["state"],
                    "postalCode": s["postal_code"],
                    "phone": s["phone"],
                    "distance": s["distance"],
                    "lowStock": s["low_stock"],
                }
                for s in store_list
            ],
        }

    return app


def create_walmart_app(
    catalog: Optional[List[Dict]] = None,
    stores: Optional[List[Dict]] = None,
    api_key: str = "test-key",
    error_rate: float = 0.0,
    extra_latency_ms: int = 0,
    random_seed: Optional[int] = None
) -> FastAPI:
    """
    Walmart style affiliate API under ``/v1``.

    Authentication is the ``WM_CONSUMER.ID`` header; a wrong one gets a 401.
    """
    app = FastAPI(title="Mock API - walmart")
    _install_failure_injection(app, error_rate, extra_latency_ms, random_seed)
    products = catalog if catalog is not None else sample_catalog()
    store_list = stores if stores is not None else sample_stores()

    def check_key(request: Request) -> None:
        if request.headers.get("WM_CONSUMER.ID") != api_key:
            raise HTTPException(status_code=401, detail="Invalid consumer id")

    def to_item(p: Dict) -> Dict:
        if p["pre_order"]:
            stock = "Pre-Order"
        elif p["in_stock"]:
            stock = "Available"
        else:
            stock = "Not available"
        return {
            "itemId": int(p["item_id"]),
            "name": p["name"],
            "salePrice": p["price"],
            "msrp": p["regular_price"],
            "upc": p["upc"],
            "stock": stock,
            "availableOnline": p["in_stock"],
            "categoryPath": "Collectibles/Trading Cards/Pokemon Trading Cards",
            "productUrl": f"https://www.walmart.com/ip/{p['item_id']}",
        }

    @app.get("/v1/items")
    async def items_by_upc(request: Request, upc: Optional[str] = None):
        check_key(request)
        matched = [to_item(p) for p in products if upc and p["upc"] == upc]
        if not matched:
            raise HTTPException(status_code=404, detail="No items found")
        return {"items": matched}

    @app.get("/v1/items/{item_id}")
    async def get_item(request: Request, item_id: str):
        check_key(request)
        for p in products:
            if p["item_id"] == item_id:
                return to_item(p)
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found")

    @app.get("/v1/search")
    async def search(request: Request, query: str = "", numItems: int = 10, start: int = 1):
        check_key(request)
        matched = [p for p in products if _matches(p, query)]
        page = matched[start - 1:start - 1 + numItems]
        return {"query": query, "totalResults": len(matched), "items": [to_item(p) for p in page]}

    @app.get("/v1/stores")
    async def find_stores(request: Request, zip: Optional[str] = None, radius: int = 25):
        check_key(request)
        return [
            {
                "id": int(s["id"]),
                "name": s["name"],
                "displayName": f"{s['city']} Supercenter",
                "phone": s["phone"],
                "distance": s["distance"],
                "address": {
                    "address": s["address"],
                    "city": s["city"],
                    "state": s["state"],
                    "postalCode": s["postal_code"],
                },
            }
            for s in store_list
            if s["distance"] <= radius
        ]

    return app


SCHEMA_ORG = "https://schema.org/"


def _product_path(p: Dict) -> str:
    slug = "-".join(p["name"].lower().replace(":", "").replace("&", "and").split())
    return f"/p/{slug}/-/A-{p['tcin']}"


def _page(title: str, body: str, head: str = "") -> str:
    return (
        "<!DOCTYPE html><html><head>"
        f"<title>{html.escape(title)}</title>{head}"
        f"</head><body>{body}</body></html>"
    )


def create_storefront_app(
    catalog: Optional[List[Dict]] = None,
    error_rate: float = 0.0,
    extra_latency_ms: int = 0,
    random_seed: Optional[int] = None,
    block_pages: bool = False
) -> FastAPI:
    """
    Target style HTML storefront.

    Search pages carry ``data-test`` product cards without availability, so
    the scraping adapter has to read the product page's JSON-LD for it.
    With ``block_pages`` every page is a bot-challenge page.
    """
    app = FastAPI(title="Mock storefront - target")
    _install_failure_injection(app, error_rate, extra_latency_ms, random_seed)
    products = catalog if catalog is not None else sample_catalog()

    def availability(p: Dict) -> str:
        if p["pre_order"]:
            return "PreOrder"
        return "InStock" if p["in_stock"] else "OutOfStock"

    def card(p: Dict) -> str:
        was = ""
        if p["regular_price"] != p["price"]:
            was = f'<span data-test="was-price">reg ${p["regular_price"]:.2f}</span>'
        return (
            '<li data-test="list-entry-product-card">'
            f'<a data-test="product-title" href="{_product_path(p)}">{html.escape(p["name"])}</a>'
            f'<span data-test="current-price">${p["price"]:.2f}</span>{was}'
            "</li>"
        )

    def challenge() -> HTMLResponse:
        return HTMLResponse(_page("Access Denied", "<h1>Are you a robot?</h1><p>captcha</p>"), status_code=403)

    @app.get("/", response_class=HTMLResponse)
    async def home():
        if block_pages:
            return challenge()
        return _page("Mock Target", "<h1>Welcome</h1>")

    @app.get("/s", response_class=HTMLResponse)
    async def search(searchTerm: str = ""):
        if block_pages:
            return challenge()
        matched = [
            p for p in products
            if searchTerm in (p["upc"], p["tcin"], p["sku"]) or _matches(p, searchTerm)
        ]
        cards = "".join(card(p) for p in matched)
        return _page(f"{searchTerm} : Target", f"<h1>Results for {html.escape(searchTerm)}</h1><ul>{cards}</ul>")

    @app.get("/p/{slug}/-/{code}", response_class=HTMLResponse)
    async def product_page(slug: str, code: str):
        if block_pages:
            return challenge()
        tcin = code[2:] if code.startswith("A-") else code
        p = next((item for item in products if item["tcin"] == tcin), None)
        if p is None:
            raise HTTPException(status_code=404, detail="Product not found")

        json_ld = {
            "@context": "https://schema.org",
            "@type": "Product",
            "name": p["name"],
            "sku": p["tcin"],
            "gtin12": p["upc"],
            "image": [f"https://target.scene7.com/is/image/Target/{p['tcin']}"],
            "offers": {
                "@type": "Offer",
                "price": f"{p['price']:.2f}",
                "priceCurrency": "USD",
                "availability": SCHEMA_ORG + availability(p),
            },
        }
        if p["in_stock"]:
            action = "<button>Add to cart</button>"
        else:
            action = "<div>Sold out</div>"
        body = (
            f"<h1>{html.escape(p['name'])}</h1>"
            f'<span data-test="current-price">${p["price"]:.2f}</span>'
            f"{action}"
        )
        head = (
            '<meta property="og:type" content="product">'
            f'<script type="application/ld+json">{json.dumps(json_ld)}</script>'
        )
        return _page(p["name"], body, head)

    return app
