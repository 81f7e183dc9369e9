"""Storefront checkout and payment processing."""

__version__ = "1.0.0"
