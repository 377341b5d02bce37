"""포트폴리오 계산/매매 오케스트레이션."""

from rebalancer.portfolio.drift_calculator import DEFAULT_TOLERANCE, DriftCalculator
from rebalancer.portfolio.portfolio_service import DEFAULT_CONSTRUCTION_BUFFER, PortfolioService

__all__ = [
    "DEFAULT_CONSTRUCTION_BUFFER",
    "DEFAULT_TOLERANCE",
    "DriftCalculator",
    "PortfolioService",
]
