"""Configuration module."""

from rebalancer.config.settings import RebalancerSettings, clear_settings_cache, get_settings

__all__ = ["RebalancerSettings", "clear_settings_cache", "get_settings"]
