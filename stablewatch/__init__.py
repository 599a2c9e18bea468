"""Stablecoin market data aggregation service."""

__version__ = "1.0.0"
