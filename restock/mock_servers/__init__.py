"""Mock retailer servers for testing."""

from .app import create_bestbuy_app, create_storefront_app, create_walmart_app, sample_catalog

__all__ = ["create_bestbuy_app", "create_storefront_app", "create_walmart_app", "sample_catalog"]
