"""Pokemon TCG retailer availability aggregation."""

__version__ = "1.0.0"
