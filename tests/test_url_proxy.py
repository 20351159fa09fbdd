import httpx
import pytest

from storefront.errors import InvalidUrlError, ProxyError
from storefront.services.url_proxy import (
    Provider,
    UrlProxy,
    is_heic,
    pick_content_type,
    request_headers,
    rewrite_dropbox,
    rewrite_google_drive,
    rewrite_onedrive,
    rewrite_url,
)

HEIC_BYTES = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic" + b"\x00" * 32
AVIF_BYTES = b"\x00\x00\x00\x1cftypavif\x00\x00\x00\x00avifmif1miaf" + b"\x00" * 32


def proxy_for(handler) -> UrlProxy:
    return UrlProxy(transport=httpx.MockTransport(handler))


def test_provider_rewrites():
    assert rewrite_dropbox("https://www.dropbox.com/s/abc/pic.jpg?dl=0") == "https://www.dropbox.com/s/abc/pic.jpg?dl=1"
    assert rewrite_dropbox("https://www.dropbox.com/s/abc/pic.jpg") == "https://www.dropbox.com/s/abc/pic.jpg?dl=1"
    assert rewrite_onedrive("https://1drv.ms/i/s!abc?e=1") == "https://1drv.ms/i/s!abc?e=1&download=1"
    assert (
        rewrite_google_drive("https://drive.google.com/file/d/FILE123/view?usp=sharing")
        == "https://drive.google.com/uc?export=view&id=FILE123"
    )


async def test_google_photos_short_link_is_resolved_and_rewritten():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "photos.app.goo.gl":
            return httpx.Response(302, headers={"Location": "https://photos.google.com/share/x/photo/AF1QipABC_1?key=k"})
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True) as client:
        out = await rewrite_url("https://photos.app.goo.gl/xyz", client)

    assert out.provider == Provider.google_photos
    assert out.url == "https://lh3.googleusercontent.com/d/AF1QipABC_1=w1200"


async def test_supabase_signed_url_is_untouched():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
        url = "https://abc.supabase.co/storage/v1/object/sign/bucket/pic.png?token=t"
        out = await rewrite_url(url, client)
    assert out.url == url
    assert request_headers(out.provider)["Cache-Control"] == "no-cache"


async def test_fetch_image_sends_browser_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["ua"] = request.headers.get("user-agent")
        seen["url"] = str(request.url)
        return httpx.Response(200, content=b"\xff\xd8\xffjpeg", headers={"Content-Type": "image/png; charset=binary"})

    image = await proxy_for(handler).fetch_image("https://www.dropbox.com/s/abc/pic.jpg?dl=0")

    assert seen["url"].endswith("dl=1")
    assert "Mozilla" in seen["ua"]
    assert image.content_type == "image/png"
    assert image.heic_relabelled is False


async def test_googleusercontent_400_retries_full_size():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if str(request.url).endswith("=w1200"):
            return httpx.Response(400)
        return httpx.Response(200, content=b"img", headers={"Content-Type": "image/jpeg"})

    image = await proxy_for(handler).fetch_image("https://photos.google.com/share/x/photo/AF1QipZZZ")

    assert calls == [
        "https://lh3.googleusercontent.com/d/AF1QipZZZ=w1200",
        "https://lh3.googleusercontent.com/d/AF1QipZZZ=s0",
    ]
    assert image.content == b"img"


async def test_heic_payload_is_relabelled_as_jpeg():
    handler = lambda r: httpx.Response(200, content=HEIC_BYTES, headers={"Content-Type": "application/octet-stream"})
    image = await proxy_for(handler).fetch_image("https://cdn.example.com/IMG_0001.HEIC")
    assert image.content_type == "image/jpeg"
    assert image.heic_relabelled is True
    assert image.content == HEIC_BYTES


async def test_upstream_status_is_propagated():
    with pytest.raises(ProxyError) as exc:
        await proxy_for(lambda r: httpx.Response(403)).fetch_image("https://cdn.example.com/a.png")
    assert exc.value.status_code == 403


async def test_network_failure_is_500():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(ProxyError) as exc:
        await proxy_for(handler).fetch_image("https://cdn.example.com/a.png")
    assert exc.value.status_code == 500


@pytest.mark.parametrize("url", [None, "", "not a url", "ftp://example.com/a.png"])
async def test_invalid_urls_rejected(url):
    with pytest.raises(InvalidUrlError):
        await proxy_for(lambda r: httpx.Response(200)).fetch_image(url)


async def test_fetch_pdf_content_type_gate():
    ok = lambda r: httpx.Response(200, content=b"%PDF-1.4", headers={"Content-Type": "application/pdf"})
    assert await proxy_for(ok).fetch_pdf("https://x.test/a.pdf") == b"%PDF-1.4"

    binary = lambda r: httpx.Response(200, content=b"%PDF-1.4", headers={"Content-Type": "application/octet-stream"})
    assert await proxy_for(binary).fetch_pdf("https://x.test/a") == b"%PDF-1.4"

    html = lambda r: httpx.Response(200, content=b"<html>", headers={"Content-Type": "text/html"})
    with pytest.raises(ProxyError) as exc:
        await proxy_for(html).fetch_pdf("https://x.test/a.pdf")
    assert exc.value.status_code == 400


def test_content_type_helpers():
    assert is_heic(HEIC_BYTES)
    assert not is_heic(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16)
    assert pick_content_type("application/octet-stream", "https://x.test/a.webp") == "image/webp"
    assert pick_content_type(None, "https://x.test/blob") == "image/jpeg"


async def test_proxy_routes(client, proxy_handler):
    proxy_handler["handler"] = lambda r: httpx.Response(200, content=HEIC_BYTES)
    resp = await client.get("/api/proxy/image", params={"url": "https://cdn.example.com/a.heic"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"
    assert resp.headers["cache-control"] == "public, max-age=86400"
    assert resp.headers["x-original-format"] == "heic"

    resp = await client.get("/api/proxy/image")
    assert resp.status_code == 400

    proxy_handler["handler"] = lambda r: httpx.Response(404)
    resp = await client.get("/api/proxy/pdf", params={"url": "https://cdn.example.com/a.pdf"})
    assert resp.status_code == 404


async def test_avif_keeps_its_content_type():
    assert not is_heic(AVIF_BYTES)
    handler = lambda r: httpx.Response(200, content=AVIF_BYTES, headers={"Content-Type": "image/avif"})
    image = await proxy_for(handler).fetch_image("https://cdn.example.com/photo.avif")
    assert image.content_type == "image/avif"
    assert image.heic_relabelled is False


def test_heif_compatible_brand_still_detected():
    # major brand mif1 with heic listed as compatible
    buffer = b"\x00\x00\x00\x18ftypmif1\x00\x00\x00\x00mif1heic" + b"\x00" * 16
    assert is_heic(buffer)


def test_binary_header_passed_through_without_extension():
    assert pick_content_type("application/octet-stream", "https://x.test/blob/123") == "application/octet-stream"
    assert pick_content_type("binary/octet-stream; charset=x", "https://x.test/blob") == "binary/octet-stream"
    assert pick_content_type("text/html", "https://x.test/blob") == "image/jpeg"
