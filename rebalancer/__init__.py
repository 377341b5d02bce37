"""Crypto index rebalancing engine."""

__version__ = "0.1.0"
