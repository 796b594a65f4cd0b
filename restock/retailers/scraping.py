"""Generic storefront scraping adapter driven by a SiteProfile."""

from typing import List, Optional
from urllib.parse import quote, quote_plus

from restock.models.config import RetailerConfig
from restock.models.data_models import (
    AvailabilityRequest,
    AvailabilityResponse,
    RetailerHealthStatus,
    RetailerMetrics,
)
from restock.models.errors import ErrorKind, RetailerError
from restock.processor.classifier import (
    derive_in_stock,
    determine_availability_status,
    is_pokemon_tcg_product,
)
from restock.processor.normalizer import build_cart_url, canonical_url
from restock.retailers.base import AdapterToolkit
from restock.retailers.extraction import (
    ListingProduct,
    ProductDetails,
    SiteProfile,
    extract_listings,
    parse_product_page,
)
from restock.urls.store import CandidateStore


class ScrapingAdapter:
    """
    Availability from a retailer's public storefront.

    Lookup order: a live URL hint from the candidate store, else a storefront
    search by UPC, SKU, then product id, enriched from the first result's
    product page.
    """

    def __init__(
        self,
        toolkit: AdapterToolkit,
        profile: SiteProfile,
        candidate_store: Optional[CandidateStore] = None
    ):
        self.toolkit = toolkit
        self.profile = profile
        self.candidate_store = candidate_store

    @property
    def retailer_id(self) -> str:
        return self.toolkit.retailer_id

    @property
    def config(self) -> RetailerConfig:
        return self.toolkit.config

    def search_url(self, query: str) -> str:
        encoded = quote(query) if self.profile.quote_query_in_path else quote_plus(query)
        return self.config.base_url + self.profile.search_path.format(query=encoded)

    async def _search(self, query: str) -> List[ListingProduct]:
        html = await self.toolkit.get_text(self.search_url(query))
        return extract_listings(html, self.profile, self.config.base_url)

    async def _product_page(self, url: str) -> ProductDetails:
        html = await self.toolkit.get_text(url)
        return parse_product_page(html, self.profile, url)

    async def _live_hint(self, request: AvailabilityRequest) -> Optional[str]:
        if self.candidate_store is None:
            return None
        return await self.candidate_store.get_live_url(request.product_id, self.retailer_id)

    async def _find_listing(self, request: AvailabilityRequest) -> ListingProduct:
        for term in (request.upc, request.sku, request.product_id):
            if not term:
                continue
            listings = await self._search(term)
            if listings:
                return listings[0]
        raise self.toolkit.error(f"Product not found: {request.product_id}", ErrorKind.NOT_FOUND)

    def _merge(self, listing: ListingProduct, details: ProductDetails) -> ListingProduct:
        return ListingProduct(
            title=details.title or listing.title,
            url=listing.url,
            price=details.price or listing.price,
            original_price=details.original_price or listing.original_price,
            availability_text=details.availability_text or listing.availability_text,
            shipping_text=details.shipping_text or listing.shipping_text,
            product_code=details.product_code or listing.product_code,
            image_url=details.image_url or listing.image_url,
        )

    async def _enrich(self, listing: ListingProduct) -> ListingProduct:
        if not self.profile.enrich_from_product_page:
            return listing
        if self.profile.shipping_implies_stock and listing.shipping_text:
            return listing
        try:
            details = await self._product_page(listing.url)
        except RetailerError as e:
            # Listing data is still usable without the product page
            self.toolkit.logger.warning(
                "enrichment_failed",
                retailer=self.retailer_id,
                url=listing.url,
                error_kind=e.kind.value,
            )
            return listing
        return self._merge(listing, details)

    def _to_response(self, product_id: str, listing: ListingProduct, lookup: str) -> AvailabilityResponse:
        if self.profile.shipping_implies_stock and listing.shipping_text:
            in_stock = True
        else:
            in_stock = derive_in_stock(listing.availability_text)
        return AvailabilityResponse(
            product_id=product_id,
            retailer_id=self.retailer_id,
            in_stock=in_stock,
            availability_status=determine_availability_status(in_stock, listing.availability_text),
            product_url=listing.url,
            price=listing.price,
            original_price=listing.original_price if listing.original_price != listing.price else None,
            cart_url=build_cart_url(listing.url, self.retailer_id),
            metadata={
                "source": "scrape",
                "lookup": lookup,
                "title": listing.title,
                "product_code": listing.product_code,
                "image_url": listing.image_url,
                "availability_text": listing.availability_text,
                "assumed_in_stock": not listing.availability_text and not listing.shipping_text,
            },
        )

    async def check_availability(self, request: AvailabilityRequest) -> AvailabilityResponse:
        with self.toolkit.translate_errors("check_availability"):
            hint = await self._live_hint(request)
            if hint:
                try:
                    details = await self._product_page(hint)
                except RetailerError as e:
                    if e.kind != ErrorKind.NOT_FOUND:
                        raise
                else:
                    listing = self._merge(ListingProduct(title="", url=hint), details)
                    return self._to_response(request.product_id, listing, "hint")

            listing = await self._enrich(await self._find_listing(request))
            return self._to_response(request.product_id, listing, "search")

    async def search_products(self, query: str) -> List[AvailabilityResponse]:
        with self.toolkit.translate_errors("search_products"):
            listings = await self._search(query)
        return [
            self._to_response(listing.product_code or canonical_url(listing.url), listing, "search")
            for listing in listings
            if is_pokemon_tcg_product(listing.title)
        ]

    async def get_health_status(self) -> RetailerHealthStatus:
        return await self.toolkit.health_check(
            lambda: self.toolkit.get_text(self.config.base_url + self.profile.health_path)
        )

    def get_metrics(self) -> RetailerMetrics:
        return self.toolkit.get_metrics()
