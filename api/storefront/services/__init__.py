# storefront/services/__init__.py
"""
Business logic services for the storefront.
"""
from storefront.services.catalog import CategoryService, ProductCatalogService
from storefront.services.checkout import CheckoutService, StripeGateway
from storefront.services.media_store import MediaStore
from storefront.services.url_proxy import UrlProxy

__all__ = [
    "CategoryService",
    "CheckoutService",
    "MediaStore",
    "ProductCatalogService",
    "StripeGateway",
    "UrlProxy",
]
