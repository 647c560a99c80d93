"""Tamper-resistant TWAP and realized-volatility oracle service."""

__version__ = "1.0.0"
