"""Bulk product image replacement for storefront catalogs."""

__version__ = "0.1.0"
