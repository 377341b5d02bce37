"""Market data access (cached price oracle adapter)."""

from rebalancer.market.price_service import PriceService

__all__ = ["PriceService"]
