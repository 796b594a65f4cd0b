"""Best Buy Products API adapter."""

from typing import Any, Dict, List, Optional

from restock.models.config import RetailerConfig
from restock.models.data_models import (
    AvailabilityRequest,
    AvailabilityResponse,
    RetailerHealthStatus,
    RetailerMetrics,
    StoreLocation,
)
from restock.models.errors import ErrorKind, RetailerError
from restock.processor.classifier import determine_availability_status, is_pokemon_tcg_product
from restock.processor.normalizer import to_price
from restock.retailers.base import AdapterToolkit

PRODUCT_FIELDS = ",".join([
    "sku",
    "name",
    "salePrice",
    "regularPrice",
    "onlineAvailability",
    "inStoreAvailability",
    "orderable",
    "url",
    "addToCartUrl",
    "upc",
    "categoryPath.name",
])

DEFAULT_RADIUS_MILES = 25
SEARCH_PAGE_SIZE = 20


class BestBuyAdapter:
    """Availability via the Best Buy Products API, keyed by SKU."""

    def __init__(self, toolkit: AdapterToolkit):
        if not toolkit.config.api_key:
            raise ValueError("Best Buy API key is required")
        self.toolkit = toolkit

    @property
    def retailer_id(self) -> str:
        return self.toolkit.retailer_id

    @property
    def config(self) -> RetailerConfig:
        return self.toolkit.config

    def _params(self, **extra) -> Dict[str, Any]:
        params = {"apikey": self.config.api_key, "format": "json", "show": PRODUCT_FIELDS}
        params.update(extra)
        return params

    async def _get_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.toolkit.get_json(f"/products/{sku}", self._params())
        except RetailerError as e:
            if e.kind == ErrorKind.NOT_FOUND:
                return None
            raise

    async def _get_by_upc(self, upc: str) -> Optional[Dict[str, Any]]:
        data = await self.toolkit.get_json("/products", self._params(upc=upc))
        products = data.get("products") or []
        return products[0] if products else None

    async def _find_product(self, request: AvailabilityRequest) -> Dict[str, Any]:
        product = None
        if request.sku:
            product = await self._get_by_sku(request.sku)
        if product is None and request.upc:
            product = await self._get_by_upc(request.upc)
        if product is None and request.product_id.isdigit():
            product = await self._get_by_sku(request.product_id)
        if product is None:
            raise self.toolkit.error(f"Product not found: {request.product_id}", ErrorKind.NOT_FOUND)
        return product

    async def _store_locations(self, sku: str, zip_code: str, radius: Optional[int]) -> List[StoreLocation]:
        try:
            data = await self.toolkit.get_json(
                f"/products/{sku}/stores",
                self._params(area=f"{zip_code},{radius or DEFAULT_RADIUS_MILES}"),
            )
        except RetailerError as e:
            self.toolkit.logger.warning(
                "store_lookup_failed", retailer=self.retailer_id, sku=sku, error_kind=e.kind.value
            )
            return []

        return [
            StoreLocation(
                store_id=str(store.get("storeID", "")),
                store_name=store.get("name", ""),
                address=store.get("address", ""),
                city=store.get("city", ""),
                state=store.get("state", ""),
                zip_code=store.get("postalCode", ""),
                phone=store.get("phone"),
                distance_miles=store.get("distance"),
                in_stock=True,
                stock_level=1 if store.get("lowStock") else None,
            )
            for store in data.get("stores") or []
        ]

    def _to_response(
        self,
        product_id: str,
        product: Dict[str, Any],
        stores: Optional[List[StoreLocation]] = None
    ) -> AvailabilityResponse:
        in_stock = bool(product.get("onlineAvailability") or product.get("inStoreAvailability"))
        availability_text = "Pre-order" if product.get("orderable") == "PreOrder" else None
        if availability_text:
            in_stock = True

        price = to_price(product.get("salePrice")) or to_price(product.get("regularPrice"))
        regular = to_price(product.get("regularPrice"))
        return AvailabilityResponse(
            product_id=product_id,
            retailer_id=self.retailer_id,
            in_stock=in_stock,
            availability_status=determine_availability_status(in_stock, availability_text),
            product_url=product.get("url", ""),
            price=price,
            original_price=regular if regular != price else None,
            cart_url=product.get("addToCartUrl"),
            store_locations=tuple(stores or ()),
            metadata={
                "source": "api",
                "sku": str(product.get("sku", "")),
                "name": product.get("name"),
                "upc": product.get("upc"),
                "online_availability": product.get("onlineAvailability"),
                "in_store_availability": product.get("inStoreAvailability"),
            },
        )

    async def check_availability(self, request: AvailabilityRequest) -> AvailabilityResponse:
        with self.toolkit.translate_errors("check_availability"):
            product = await self._find_product(request)
            stores: List[StoreLocation] = []
            if request.zip_code:
                stores = await self._store_locations(str(product["sku"]), request.zip_code, request.radius_miles)
            return self._to_response(request.product_id, product, stores)

    async def search_products(self, query: str) -> List[AvailabilityResponse]:
        with self.toolkit.translate_errors("search_products"):
            data = await self.toolkit.get_json(
                "/products",
                self._params(q=query, pageSize=SEARCH_PAGE_SIZE),
            )
            results = []
            for product in data.get("products") or []:
                categories = " ".join(c.get("name", "") for c in product.get("categoryPath") or [])
                if is_pokemon_tcg_product(product.get("name"), categories):
                    results.append(self._to_response(str(product.get("sku", "")), product))
            return results

    async def get_health_status(self) -> RetailerHealthStatus:
        return await self.toolkit.health_check(
            lambda: self.toolkit.get_json("/products", self._params(pageSize=1))
        )

    def get_metrics(self) -> RetailerMetrics:
        return self.toolkit.get_metrics()
