import base64
import json
from types import SimpleNamespace

import pytest

from storefront.errors import ValidationFailed
from storefront.services.media_store import MediaStore, decode_image_data, decode_pdf_data

from conftest import PNG_BYTES


def blank_product():
    return SimpleNamespace(id=1, image_file=None, image_data=None, pdf_file=None, pdf_data=None, storage_url=None)


def test_database_image_clears_file_sibling(uploads_root):
    store = MediaStore(uploads_root)
    p = blank_product()
    p.image_file = "/uploads/images/old.png"

    slot = store.store(p, PNG_BYTES, "image", "database", content_type="image/png")

    assert slot == "image_data"
    assert p.image_file is None
    envelope = json.loads(p.image_data)
    assert envelope["contentType"] == "image/png"
    assert base64.b64decode(envelope["data"]) == PNG_BYTES


def test_file_pdf_written_under_uploads(uploads_root):
    store = MediaStore(uploads_root)
    p = blank_product()
    p.pdf_data = "abc"

    slot = store.store(p, b"%PDF-1.4 test", "pdf", "file", original_name="../../My Manual.pdf")

    assert slot == "pdf_file"
    assert p.pdf_data is None
    assert p.pdf_file.startswith("/uploads/pdfs/pdf_")
    assert p.pdf_file.endswith("_My_Manual.pdf")
    on_disk = store.resolve_file(p.pdf_file)
    assert on_disk.read_bytes() == b"%PDF-1.4 test"


def test_store_rejects_unknown_type(uploads_root):
    with pytest.raises(ValidationFailed):
        MediaStore(uploads_root).store(blank_product(), b"x", "video", "database")


def test_resolve_file_refuses_escape(uploads_root):
    store = MediaStore(uploads_root)
    assert store.resolve_file("/uploads/../../etc/passwd") is None
    assert store.resolve_file("") is None


def test_clear_slot_is_idempotent(uploads_root):
    store = MediaStore(uploads_root)
    p = blank_product()
    store.store(p, PNG_BYTES, "image", "file", original_name="a.png")
    path = store.resolve_file(p.image_file)
    assert path.exists()

    old_path = p.image_file
    assert store.clear_slot(p, "image_file") is True
    assert p.image_file is None
    # removal is left to the caller
    assert path.exists()
    assert store.clear_slot(p, "image_file") is False

    store.unlink_quietly(old_path)
    assert not path.exists()
    store.unlink_quietly(old_path)


def test_clear_slot_rejects_unknown_slot(uploads_root):
    with pytest.raises(ValidationFailed):
        MediaStore(uploads_root).clear_slot(blank_product(), "storage_url")


def test_decode_image_data_reads_both_generations():
    raw = base64.b64encode(PNG_BYTES).decode()

    payload, ct = decode_image_data(raw)
    assert payload == PNG_BYTES
    assert ct == "image/png"

    payload, ct = decode_image_data(json.dumps({"contentType": "image/webp", "data": raw}))
    assert payload == PNG_BYTES
    assert ct == "image/webp"

    payload, ct = decode_image_data(f"data:image/gif;base64,{raw}")
    assert ct == "image/gif"


def test_decode_pdf_data_accepts_data_url():
    raw = base64.b64encode(b"%PDF-1.7").decode()
    assert decode_pdf_data(raw) == b"%PDF-1.7"
    assert decode_pdf_data(f"data:application/pdf;base64,{raw}") == b"%PDF-1.7"
