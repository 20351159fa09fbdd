# storefront/services/media_resolver.py
"""
Media resolution - decides which of a product's five media slots is rendered.

Priority (first populated slot wins):
    1. image_file   -> served directly from /uploads
    2. image_data   -> /api/products/{id}/img
    3. pdf_file     -> served directly from /uploads
    4. pdf_data     -> /api/products/{id}/pdf
    5. storage_url  -> classified as image or PDF, fetched through the proxy
    6. nothing      -> "no content" placeholder

The function is pure: it reads the five fields (plus the id) and never
touches the network or the database.
"""
from __future__ import annotations
import enum
import re
from dataclasses import dataclass, asdict
from typing import Any, Mapping, Optional
from urllib.parse import quote


class MediaKind(str, enum.Enum):
    image = "image"
    pdf = "pdf"
    none = "none"


class MediaSource(str, enum.Enum):
    local_path = "local_path"
    api_endpoint = "api_endpoint"
    proxied_url = "proxied_url"
    none = "none"


@dataclass(frozen=True)
class MediaRef:
    kind: MediaKind
    source: MediaSource
    src: Optional[str] = None
    slot: Optional[str] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        d["source"] = self.source.value
        return d


NO_CONTENT = MediaRef(kind=MediaKind.none, source=MediaSource.none)

_PDF_RE = re.compile(r"\.pdf(\?|$)", re.IGNORECASE)
_IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|bmp|svg)(\?|$)", re.IGNORECASE)
_IMAGE_HINTS = ("image", "img", "photo", "picture")


def classify_external_url(url: str) -> MediaKind:
    """Best-effort image/PDF guess for an external URL (no content sniffing)."""
    if _PDF_RE.search(url):
        return MediaKind.pdf
    if _IMAGE_EXT_RE.search(url):
        return MediaKind.image
    lowered = url.lower()
    if any(hint in lowered for hint in _IMAGE_HINTS):
        return MediaKind.image
    return MediaKind.image


def image_endpoint(product_id: Any) -> str:
    return f"/api/products/{product_id}/img"


def pdf_endpoint(product_id: Any) -> str:
    return f"/api/products/{product_id}/pdf"


def proxy_endpoint(url: str, kind: MediaKind) -> str:
    route = "pdf" if kind == MediaKind.pdf else "image"
    return f"/api/proxy/{route}?url={quote(url, safe='')}"


def _field(product: Any, name: str) -> Optional[str]:
    if isinstance(product, Mapping):
        value = product.get(name)
    else:
        value = getattr(product, name, None)
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def resolve_media(product: Any) -> MediaRef:
    """Pick the slot to render for ``product`` (ORM row or mapping)."""
    product_id = _field(product, "id")

    image_file = _field(product, "image_file")
    if image_file:
        return MediaRef(MediaKind.image, MediaSource.local_path, image_file, "image_file")

    if _field(product, "image_data"):
        return MediaRef(MediaKind.image, MediaSource.api_endpoint, image_endpoint(product_id), "image_data")

    pdf_file = _field(product, "pdf_file")
    if pdf_file:
        return MediaRef(MediaKind.pdf, MediaSource.local_path, pdf_file, "pdf_file")

    if _field(product, "pdf_data"):
        return MediaRef(MediaKind.pdf, MediaSource.api_endpoint, pdf_endpoint(product_id), "pdf_data")

    storage_url = _field(product, "storage_url")
    if storage_url:
        kind = classify_external_url(storage_url)
        return MediaRef(kind, MediaSource.proxied_url, proxy_endpoint(storage_url, kind), "storage_url")

    return NO_CONTENT
