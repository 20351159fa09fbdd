from __future__ import annotations
from functools import lru_cache

from fastapi import HTTPException

from storefront.errors import ConflictError, StorefrontError
from storefront.services.checkout import StripeGateway
from storefront.services.media_store import MediaStore
from storefront.services.url_proxy import UrlProxy
from storefront.settings import settings


def get_media_store() -> MediaStore:
    return MediaStore(settings.uploads_root)


def get_url_proxy() -> UrlProxy:
    return UrlProxy(timeout=settings.PROXY_TIMEOUT, pdf_timeout=settings.PDF_PROXY_TIMEOUT)


@lru_cache(maxsize=1)
def get_stripe_gateway() -> StripeGateway:
    return StripeGateway(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        currency=settings.STRIPE_CURRENCY,
    )


def http_error(e: StorefrontError) -> HTTPException:
    if isinstance(e, ConflictError):
        return HTTPException(e.status_code, detail=e.to_detail())
    return HTTPException(e.status_code, detail=e.message)
