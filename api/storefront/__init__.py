"""Storefront back end: catalog, media, checkout."""
