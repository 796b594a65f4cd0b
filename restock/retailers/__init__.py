"""Retailer adapters and the factory that builds them from configuration."""

from typing import Optional

from restock.models.config import RetailerConfig
from restock.models.data_models import RetailerType
from restock.retailers.base import AdapterToolkit, RetailerAdapter
from restock.retailers.bestbuy import BestBuyAdapter
from restock.retailers.scraping import ScrapingAdapter
from restock.retailers.sites import SITE_PROFILES
from restock.retailers.walmart import WalmartAdapter
from restock.urls.store import CandidateStore

API_ADAPTERS = {
    "best-buy": BestBuyAdapter,
    "walmart": WalmartAdapter,
}


def create_adapter(
    config: RetailerConfig,
    toolkit: AdapterToolkit,
    candidate_store: Optional[CandidateStore] = None
) -> RetailerAdapter:
    """
    Build the adapter for a retailer.

    Raises:
        ValueError: Unknown slug, or an API retailer without an API key
    """
    if config.slug in API_ADAPTERS and config.type != RetailerType.SCRAPING:
        return API_ADAPTERS[config.slug](toolkit)
    if config.slug in SITE_PROFILES:
        return ScrapingAdapter(toolkit, SITE_PROFILES[config.slug], candidate_store)
    raise ValueError(f"Unsupported retailer: {config.slug}")


__all__ = [
    "AdapterToolkit",
    "BestBuyAdapter",
    "RetailerAdapter",
    "ScrapingAdapter",
    "WalmartAdapter",
    "create_adapter",
]
