# storefront/routers/proxy.py
"""
CORS-bypass proxy for externally stored product media.
"""
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from storefront.deps import get_url_proxy, http_error
from storefront.errors import StorefrontError
from storefront.services.url_proxy import CACHE_CONTROL, UrlProxy

router = APIRouter(prefix="/api/proxy", tags=["Proxy"])


@router.get("/image")
async def proxy_image(
    url: Optional[str] = Query(None),
    thumbnail: bool = Query(False),
    proxy: UrlProxy = Depends(get_url_proxy),
):
    try:
        image = await proxy.fetch_image(url, thumbnail=thumbnail)
    except StorefrontError as e:
        raise http_error(e)
    headers = {"Cache-Control": CACHE_CONTROL}
    if image.heic_relabelled:
        headers["X-Original-Format"] = "heic"
    return Response(content=image.content, media_type=image.content_type, headers=headers)


@router.get("/pdf")
async def proxy_pdf(
    url: Optional[str] = Query(None),
    proxy: UrlProxy = Depends(get_url_proxy),
):
    try:
        content = await proxy.fetch_pdf(url)
    except StorefrontError as e:
        raise http_error(e)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Cache-Control": CACHE_CONTROL, "Content-Disposition": "inline"},
    )
