"""Walmart affiliate API adapter."""

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
from restock.processor.normalizer import build_cart_url, to_price
from restock.retailers.base import AdapterToolkit

TRADING_CARDS_CATEGORY = "4171"
SEARCH_PAGE_SIZE = 25
DEFAULT_RADIUS_MILES = 25

IN_STOCK_VALUES = {"available", "limited stock", "pre-order"}


class WalmartAdapter:
    """Availability via the Walmart affiliate API, keyed by item id."""

    def __init__(self, toolkit: AdapterToolkit):
        if not toolkit.config.api_key:
            raise ValueError("Walmart API key is required")
        self.toolkit = toolkit
        self.auth_headers = {
            "WM_SVC.NAME": "Walmart Open API",
            "WM_CONSUMER.ID": toolkit.config.api_key,
        }

    @property
    def retailer_id(self) -> str:
        return self.toolkit.retailer_id

    @property
    def config(self) -> RetailerConfig:
        return self.toolkit.config

    async def _get(self, path: str, **params) -> Any:
        params.setdefault("format", "json")
        return await self.toolkit.get_json(path, params, headers=self.auth_headers)

    async def _get_by_item_id(self, item_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._get(f"/items/{item_id}")
        except RetailerError as e:
            if e.kind == ErrorKind.NOT_FOUND:
                return None
            raise

    async def _get_by_upc(self, upc: str) -> Optional[Dict[str, Any]]:
        try:
            data = await self._get("/items", upc=upc)
        except RetailerError as e:
            if e.kind == ErrorKind.NOT_FOUND:
                return None
            raise
        items = data.get("items") or []
        return items[0] if items else None

    async def _find_item(self, request: AvailabilityRequest) -> Dict[str, Any]:
        item = None
        if request.sku:
            item = await self._get_by_item_id(request.sku)
        if item is None and request.upc:
            item = await self._get_by_upc(request.upc)
        if item is None and request.product_id.isdigit():
            item = await self._get_by_item_id(request.product_id)
        if item is None:
            raise self.toolkit.error(f"Product not found: {request.product_id}", ErrorKind.NOT_FOUND)
        return item

    async def _store_locations(self, zip_code: str, radius: Optional[int], in_stock: bool) -> List[StoreLocation]:
        # The store locator reports stores near the ZIP, not per-store inventory
        try:
            data = await self._get("/stores", zip=zip_code, radius=radius or DEFAULT_RADIUS_MILES)
        except RetailerError as e:
            self.toolkit.logger.warning(
                "store_lookup_failed", retailer=self.retailer_id, zip_code=zip_code, error_kind=e.kind.value
            )
            return []

        stores = data.get("stores") if isinstance(data, dict) else data
        locations = []
        for store in stores or []:
            address = store.get("address") or {}
            locations.append(StoreLocation(
                store_id=str(store.get("id", "")),
                store_name=store.get("displayName") or store.get("name", ""),
                address=address.get("address", ""),
                city=address.get("city", ""),
                state=address.get("state", ""),
                zip_code=address.get("postalCode", ""),
                phone=store.get("phone"),
                distance_miles=store.get("distance"),
                in_stock=in_stock,
            ))
        return locations

    @staticmethod
    def _in_stock(item: Dict[str, Any]) -> bool:
        stock = (item.get("stock") or "").lower()
        if stock:
            return stock in IN_STOCK_VALUES
        return bool(item.get("availableOnline"))

    def _to_response(
        self,
        product_id: str,
        item: Dict[str, Any],
        stores: Optional[List[StoreLocation]] = None
    ) -> AvailabilityResponse:
        in_stock = self._in_stock(item)
        stock_text = item.get("stock")
        price = to_price(item.get("salePrice"))
        msrp = to_price(item.get("msrp"))
        product_url = item.get("productUrl", "")
        return AvailabilityResponse(
            product_id=product_id,
            retailer_id=self.retailer_id,
            in_stock=in_stock,
            availability_status=determine_availability_status(in_stock, stock_text),
            product_url=product_url,
            price=price,
            original_price=msrp if msrp != price else None,
            cart_url=build_cart_url(product_url, self.retailer_id),
            store_locations=tuple(stores or ()),
            metadata={
                "source": "api",
                "item_id": str(item.get("itemId", "")),
                "name": item.get("name"),
                "upc": item.get("upc"),
                "stock": stock_text,
            },
        )

    async def check_availability(self, request: AvailabilityRequest) -> AvailabilityResponse:
        with self.toolkit.translate_errors("check_availability"):
            item = await self._find_item(request)
            stores: List[StoreLocation] = []
            if request.zip_code:
                stores = await self._store_locations(request.zip_code, request.radius_miles, self._in_stock(item))
            return self._to_response(request.product_id, item, stores)

    async def search_products(self, query: str) -> List[AvailabilityResponse]:
        with self.toolkit.translate_errors("search_products"):
            data = await self._get(
                "/search",
                query=f"{query} pokemon tcg",
                categoryId=TRADING_CARDS_CATEGORY,
                numItems=SEARCH_PAGE_SIZE,
                start=1,
            )
            return [
                self._to_response(str(item.get("itemId", "")), item)
                for item in data.get("items") or []
                if is_pokemon_tcg_product(item.get("name"), item.get("categoryPath", ""))
            ]

    async def get_health_status(self) -> RetailerHealthStatus:
        return await self.toolkit.health_check(
            lambda: self._get("/search", query="pokemon", numItems=1)
        )

    def get_metrics(self) -> RetailerMetrics:
        return self.toolkit.get_metrics()
