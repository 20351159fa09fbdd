# storefront/services/media_store.py
"""
Media Store - persists a product asset in one slot.

Slots:
- image_data: JSON text {"contentType": ..., "data": <base64>}; legacy rows hold raw base64
- pdf_data:   raw base64
- image_file / pdf_file: public path "/uploads/<images|pdfs>/<type>_<ts>_<name>"

No transaction spans the file write and the row update; a failed row update
can leave an orphaned file behind.
"""
from __future__ import annotations
import base64
import binascii
import json
import logging
import re
import time
from pathlib import Path
from typing import Optional, Tuple

from storefront.db_models import AssetType, StorageLocation, STORAGE_SLOTS
from storefront.errors import MediaStoreError, ValidationFailed

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads/"
_SUBDIRS = {AssetType.image: "images", AssetType.pdf: "pdfs"}

# (magic prefix, mime) for legacy raw-base64 images
_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)


def _safe_name(name: str) -> str:
    s = Path(name or "").name
    s = re.sub(r"[^A-Za-z0-9._-]+", "_", s).strip("._")
    return s or "upload"


def sniff_image_type(data: bytes) -> str:
    for magic, mime in _IMAGE_SIGNATURES:
        if data.startswith(magic):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data.lstrip()[:5] in (b"<svg ", b"<?xml"):
        return "image/svg+xml"
    return "image/jpeg"


def encode_image_data(payload: bytes, content_type: str) -> str:
    return json.dumps({
        "contentType": content_type or sniff_image_type(payload),
        "data": base64.b64encode(payload).decode("ascii"),
    })


def decode_image_data(text: str) -> Tuple[bytes, str]:
    """Decode an image_data value written by either format generation."""
    raw = (text or "").strip()
    if raw.startswith("{"):
        try:
            envelope = json.loads(raw)
        except ValueError:
            envelope = None
        if isinstance(envelope, dict):
            b64 = envelope.get("data") or envelope.get("base64") or ""
            content_type = envelope.get("contentType") or envelope.get("content_type")
            payload = _b64decode(b64)
            return payload, content_type or sniff_image_type(payload)

    # legacy: raw base64, optionally as a data: URL
    if raw.startswith("data:") and "," in raw:
        header, raw = raw.split(",", 1)
        content_type = header[5:].split(";", 1)[0] or None
        payload = _b64decode(raw)
        return payload, content_type or sniff_image_type(payload)
    payload = _b64decode(raw)
    return payload, sniff_image_type(payload)


def decode_pdf_data(text: str) -> bytes:
    raw = (text or "").strip()
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    return _b64decode(raw)


def _b64decode(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=False)
    except (binascii.Error, ValueError) as e:
        raise MediaStoreError(f"Stored media is not valid base64: {e}")


class MediaStore:
    """Writes uploads into the slot matching (asset type x location)."""

    def __init__(self, uploads_root: Path):
        self.uploads_root = Path(uploads_root)

    # =========================================================================
    # Write
    # =========================================================================

    def store(
        self,
        product,
        payload: bytes,
        asset_type: AssetType | str,
        location: StorageLocation | str,
        original_name: str = "",
        content_type: Optional[str] = None,
    ) -> str:
        """Persist ``payload`` on ``product``; returns the populated slot name."""
        try:
            asset_type = AssetType(asset_type)
        except ValueError:
            raise ValidationFailed(f"Invalid storage type '{asset_type}'")
        try:
            location = StorageLocation(location)
        except ValueError:
            raise ValidationFailed(f"Invalid storage location '{location}'")

        if location == StorageLocation.database:
            if asset_type == AssetType.image:
                product.image_data = encode_image_data(payload, content_type or "")
                product.image_file = None
                return "image_data"
            product.pdf_data = base64.b64encode(payload).decode("ascii")
            product.pdf_file = None
            return "pdf_data"

        public_path = self._write_file(asset_type, payload, original_name)
        if asset_type == AssetType.image:
            product.image_file = public_path
            product.image_data = None
            return "image_file"
        product.pdf_file = public_path
        product.pdf_data = None
        return "pdf_file"

    def _write_file(self, asset_type: AssetType, payload: bytes, original_name: str) -> str:
        subdir = _SUBDIRS[asset_type]
        target_dir = self.uploads_root / subdir
        filename = f"{asset_type.value}_{int(time.time() * 1000)}_{_safe_name(original_name)}"
        target = target_dir / filename
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload)
        except OSError as e:
            logger.error("Failed to write upload %s: %s", target, e)
            raise MediaStoreError(f"Failed to write file: {e}")
        logger.info("Stored %s upload at %s (%d bytes)", asset_type.value, target, len(payload))
        return f"{UPLOADS_URL_PREFIX}{subdir}/{filename}"

    # =========================================================================
    # Read / delete
    # =========================================================================

    def resolve_file(self, public_path: str) -> Optional[Path]:
        """Map a stored '/uploads/...' path to disk; None if it escapes the uploads root."""
        rel = (public_path or "").replace("\\", "/").lstrip("/")
        if rel.startswith("uploads/"):
            rel = rel[len("uploads/"):]
        if not rel:
            return None
        root = self.uploads_root.resolve()
        target = (root / rel).resolve()
        try:
            target.relative_to(root)
        except ValueError:
            return None
        return target

    def clear_slot(self, product, slot: str) -> bool:
        """
        Null one slot; returns True if it changed.

        A file-backed slot's file stays on disk; the caller unlinks it once
        the row change is committed.
        """
        if slot not in STORAGE_SLOTS:
            raise ValidationFailed(f"Invalid storage type '{slot}'")
        current = getattr(product, slot)
        if current is None:
            return False
        setattr(product, slot, None)
        return True

    def unlink_quietly(self, public_path: Optional[str]) -> None:
        if not public_path:
            return
        target = self.resolve_file(public_path)
        if target is None:
            logger.warning("Refusing to delete path outside uploads: %s", public_path)
            return
        try:
            target.unlink()
            logger.info("Deleted upload %s", target)
        except FileNotFoundError:
            logger.info("Upload already gone: %s", target)
        except OSError as e:
            logger.warning("Could not delete upload %s: %s", target, e)
