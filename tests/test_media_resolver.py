from types import SimpleNamespace

import pytest

from storefront.services.media_resolver import (
    MediaKind,
    MediaSource,
    NO_CONTENT,
    classify_external_url,
    resolve_media,
)


def product(**slots):
    base = dict(id=7, image_file=None, image_data=None, pdf_file=None, pdf_data=None, storage_url=None)
    base.update(slots)
    return SimpleNamespace(**base)


def test_image_file_wins_over_everything():
    ref = resolve_media(product(
        image_file="/uploads/images/a.png",
        image_data="abc",
        pdf_file="/uploads/pdfs/a.pdf",
        pdf_data="abc",
        storage_url="https://example.com/a.pdf",
    ))
    assert ref.kind == MediaKind.image
    assert ref.source == MediaSource.local_path
    assert ref.src == "/uploads/images/a.png"
    assert ref.slot == "image_file"


def test_image_data_served_through_product_endpoint():
    ref = resolve_media(product(image_data="abc", pdf_file="/uploads/pdfs/a.pdf"))
    assert ref.source == MediaSource.api_endpoint
    assert ref.src == "/api/products/7/img"


def test_pdf_file_then_pdf_data():
    assert resolve_media(product(pdf_file="/uploads/pdfs/a.pdf", pdf_data="x")).src == "/uploads/pdfs/a.pdf"
    ref = resolve_media(product(pdf_data="x", storage_url="https://example.com/a.png"))
    assert ref.kind == MediaKind.pdf
    assert ref.src == "/api/products/7/pdf"


def test_storage_url_is_proxied_and_classified():
    ref = resolve_media(product(storage_url="https://cdn.example.com/manual.pdf?x=1"))
    assert ref.kind == MediaKind.pdf
    assert ref.source == MediaSource.proxied_url
    assert ref.src == "/api/proxy/pdf?url=https%3A%2F%2Fcdn.example.com%2Fmanual.pdf%3Fx%3D1"

    ref = resolve_media(product(storage_url="https://cdn.example.com/pic.webp"))
    assert ref.kind == MediaKind.image
    assert ref.src.startswith("/api/proxy/image?url=")


def test_blank_slots_are_ignored():
    assert resolve_media(product(image_file="  ", image_data="", storage_url=None)) is NO_CONTENT


def test_accepts_plain_mappings():
    ref = resolve_media({"id": 3, "image_data": "abc"})
    assert ref.to_dict() == {"kind": "image", "source": "api_endpoint", "src": "/api/products/3/img", "slot": "image_data"}


@pytest.mark.parametrize("url,kind", [
    ("https://x.test/doc.PDF", MediaKind.pdf),
    ("https://x.test/doc.pdf?dl=1", MediaKind.pdf),
    ("https://x.test/pdf-viewer/page", MediaKind.image),
    ("https://x.test/photo/123", MediaKind.image),
    ("https://x.test/blob/abc", MediaKind.image),
])
def test_classify_external_url(url, kind):
    assert classify_external_url(url) == kind
