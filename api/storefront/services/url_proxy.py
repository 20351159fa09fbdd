# storefront/services/url_proxy.py
"""
External URL Proxy - server-side fetch of third-party media.

Handles:
- URL validation
- Provider rewriting (Google Photos, Dropbox, OneDrive, Google Drive, Supabase)
- Browser-like request headers
- googleusercontent "=w1200" -> "=s0" retry on HTTP 400
- Content-type resolution + HEIC/HEIF relabelling (no transcode)
- PDF fetch with fixed timeout and content-type gate
"""
from __future__ import annotations
import logging
import mimetypes
import re
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx

from storefront.errors import InvalidUrlError, ProxyError

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
CACHE_CONTROL = "public, max-age=86400"
DEFAULT_IMAGE_TYPE = "image/jpeg"

GOOGLE_PHOTOS_ID_PATTERNS = (
    re.compile(r"/photo/([A-Za-z0-9_-]+)"),
    re.compile(r"(AF1Qip[A-Za-z0-9_-]+)"),
)
GOOGLE_DRIVE_FILE_RE = re.compile(r"/file/d/([A-Za-z0-9_-]+)")
SUPABASE_SIGNED_MARKER = "supabase.co/storage/v1/object/sign/"

_IMAGE_EXT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".svg": "image/svg+xml",
    ".heic": "image/heic",
    ".heif": "image/heif",
}
_HEIF_BRANDS = {b"heic", b"heix", b"heif", b"hevc", b"hevx"}
# AVIF uses the same ftyp layout and lists mif1/miaf, but is not HEIC
_AVIF_BRANDS = {b"avif", b"avis"}
_BINARY_TYPES = {"application/octet-stream", "binary/octet-stream", "application/binary"}


class Provider:
    generic = "generic"
    google_photos = "google_photos"
    dropbox = "dropbox"
    onedrive = "onedrive"
    google_drive = "google_drive"
    supabase = "supabase"


@dataclass
class RewrittenUrl:
    url: str
    provider: str = Provider.generic


@dataclass
class ProxiedImage:
    content: bytes
    content_type: str
    heic_relabelled: bool = False


# ============================================================================
# Validation / rewriting
# ============================================================================

def validate_url(url: Optional[str]) -> str:
    url = (url or "").strip()
    if not url:
        raise InvalidUrlError("URL parameter is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidUrlError("Invalid URL format")
    return url


def _host(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def is_google_photos(url: str) -> bool:
    host = _host(url)
    return host == "photos.google.com" or host == "photos.app.goo.gl" or (
        host == "goo.gl" and urlparse(url).path.startswith("/photos")
    )


def is_short_google_link(url: str) -> bool:
    return _host(url) in ("goo.gl", "photos.app.goo.gl")


def extract_google_photo_id(url: str) -> Optional[str]:
    for pattern in GOOGLE_PHOTOS_ID_PATTERNS:
        m = pattern.search(url)
        if m:
            return m.group(1)
    return None


def _append_param(url: str, param: str) -> str:
    return f"{url}{'&' if '?' in url else '?'}{param}"


def rewrite_dropbox(url: str) -> str:
    if "dl=1" in url:
        return url
    if "dl=0" in url:
        return url.replace("dl=0", "dl=1")
    return _append_param(url, "dl=1")


def rewrite_onedrive(url: str) -> str:
    if "download=1" in url:
        return url
    return _append_param(url, "download=1")


def rewrite_google_drive(url: str) -> str:
    m = GOOGLE_DRIVE_FILE_RE.search(url)
    if not m:
        return url
    return f"https://drive.google.com/uc?export=view&id={m.group(1)}"


async def resolve_short_link(client: httpx.AsyncClient, url: str) -> str:
    try:
        resp = await client.head(url, follow_redirects=True, headers={"User-Agent": BROWSER_USER_AGENT})
        return str(resp.url)
    except httpx.HTTPError as e:
        logger.warning("Could not resolve short link %s: %s", url, e)
        return url


async def rewrite_url(url: str, client: httpx.AsyncClient) -> RewrittenUrl:
    """Apply provider-specific rewrites; each rule is independent."""
    out = RewrittenUrl(url=url)

    if is_google_photos(url):
        out.provider = Provider.google_photos
        resolved = url
        if is_short_google_link(url):
            resolved = await resolve_short_link(client, url)
        photo_id = extract_google_photo_id(resolved)
        if photo_id:
            out.url = f"https://lh3.googleusercontent.com/d/{photo_id}=w1200"
        else:
            out.url = resolved
        return out

    host = _host(url)
    if host.endswith("dropbox.com"):
        out.provider = Provider.dropbox
        out.url = rewrite_dropbox(url)
    elif host == "1drv.ms" or host.endswith("onedrive.live.com"):
        out.provider = Provider.onedrive
        out.url = rewrite_onedrive(url)
    elif host == "drive.google.com" and GOOGLE_DRIVE_FILE_RE.search(url):
        out.provider = Provider.google_drive
        out.url = rewrite_google_drive(url)
    elif SUPABASE_SIGNED_MARKER in url:
        out.provider = Provider.supabase
    return out


def request_headers(provider: str, accept: str = "image/*") -> Dict[str, str]:
    headers = {"User-Agent": BROWSER_USER_AGENT, "Accept": accept}
    if provider == Provider.google_photos:
        headers["Referer"] = "https://photos.google.com/"
    elif provider == Provider.supabase:
        headers["Cache-Control"] = "no-cache"
    return headers


# ============================================================================
# Content type
# ============================================================================

def is_heic(buffer: bytes) -> bool:
    """ISO-BMFF 'ftyp' box at offset 4 followed by a HEIF-family brand."""
    if len(buffer) < 12 or buffer[4:8] != b"ftyp":
        return False
    major = buffer[8:12]
    if major in _HEIF_BRANDS:
        return True
    if major in _AVIF_BRANDS:
        return False
    # compatible brands list up to the end of the ftyp box
    box_size = int.from_bytes(buffer[0:4], "big")
    compat = buffer[16:min(max(box_size, 16), len(buffer), 64)]
    return any(compat[i:i + 4] in _HEIF_BRANDS for i in range(0, len(compat) - 3, 4))


def content_type_from_url(url: str) -> Optional[str]:
    path = urlparse(url).path.lower()
    for ext, mime in _IMAGE_EXT_TYPES.items():
        if path.endswith(ext):
            return mime
    guessed = mimetypes.guess_type(path)[0]
    if guessed and guessed.startswith("image/"):
        return guessed
    return None


def pick_content_type(header_value: Optional[str], final_url: str) -> str:
    """image/* header, else the URL extension, else a binary header as sent, else jpeg."""
    ct = (header_value or "").split(";", 1)[0].strip().lower()
    if ct.startswith("image/"):
        return ct
    from_url = content_type_from_url(final_url)
    if from_url:
        return from_url
    if ct in _BINARY_TYPES:
        return ct
    return DEFAULT_IMAGE_TYPE


# ============================================================================
# Fetching
# ============================================================================

class UrlProxy:
    """Fetches external media; pass ``transport`` to stub the network in tests."""

    def __init__(
        self,
        timeout: float = 30.0,
        pdf_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.pdf_timeout = pdf_timeout
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(follow_redirects=True, timeout=timeout, transport=self.transport)

    async def fetch_image(self, url: str, thumbnail: bool = False) -> ProxiedImage:
        # thumbnail requests currently fetch the full payload
        url = validate_url(url)
        try:
            async with self._client(self.timeout) as client:
                target = await rewrite_url(url, client)
                headers = request_headers(target.provider)
                logger.info("Proxying image %s (provider=%s, thumbnail=%s)", target.url, target.provider, thumbnail)

                resp = await client.get(target.url, headers=headers)
                if (
                    resp.status_code == 400
                    and "googleusercontent.com" in target.url
                    and "=w1200" in target.url
                ):
                    retry_url = target.url.replace("=w1200", "=s0")
                    logger.info("Retrying googleusercontent fetch with %s", retry_url)
                    resp = await client.get(retry_url, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Image proxy fetch failed for %s: %s", url, e)
            raise ProxyError(f"Failed to fetch image: {e}", status_code=500)

        if not resp.is_success:
            logger.warning("Upstream returned %s for %s", resp.status_code, url)
            raise ProxyError(f"Failed to fetch image: upstream returned {resp.status_code}", status_code=resp.status_code)

        content = resp.content
        if is_heic(content):
            # browsers get a jpeg label; pixels are not converted
            return ProxiedImage(content=content, content_type=DEFAULT_IMAGE_TYPE, heic_relabelled=True)
        return ProxiedImage(
            content=content,
            content_type=pick_content_type(resp.headers.get("content-type"), str(resp.url)),
        )

    async def fetch_pdf(self, url: str) -> bytes:
        url = validate_url(url)
        try:
            async with self._client(self.pdf_timeout) as client:
                resp = await client.get(url, headers=request_headers(Provider.generic, accept="application/pdf,*/*"))
        except httpx.HTTPError as e:
            logger.error("PDF proxy fetch failed for %s: %s", url, e)
            raise ProxyError(f"Failed to fetch PDF: {e}", status_code=500)

        if not resp.is_success:
            raise ProxyError(f"Failed to fetch PDF: upstream returned {resp.status_code}", status_code=resp.status_code)

        ct = (resp.headers.get("content-type") or "").lower()
        if "pdf" not in ct and "application/octet-stream" not in ct:
            raise ProxyError(f"URL does not point to a PDF (content-type: {ct or 'unknown'})", status_code=400)
        return resp.content
