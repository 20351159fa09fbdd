# storefront/routers/products.py
"""
Products Router - catalog CRUD, media slots and binary streaming.
"""
from __future__ import annotations
import logging
import mimetypes
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import get_requester, require_user, requester_for
from storefront.database import get_session
from storefront.db_models import Product, User, STORAGE_SLOTS
from storefront.deps import get_media_store, http_error
from storefront.errors import StorefrontError
from storefront.models import ProductOut
from storefront.services.catalog import ProductCatalogService, Upload
from storefront.services.media_store import MediaStore, decode_image_data, decode_pdf_data
from storefront.services.visibility import Requester, can_modify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["Products"])

_EXT_BY_TYPE = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/svg+xml": "svg",
}


def _service(db: AsyncSession, store: MediaStore) -> ProductCatalogService:
    return ProductCatalogService(db, store)


async def _read_upload(file: Optional[UploadFile]) -> Optional[Upload]:
    if file is None or not file.filename:
        return None
    content = await file.read()
    return Upload(content=content, filename=file.filename, content_type=file.content_type)


async def _visible_product(service: ProductCatalogService, product_id: int, requester: Requester) -> Product:
    product = await service.get_product(product_id, requester)
    if product is None:
        raise HTTPException(404, detail="Product not found")
    return product


async def _modifiable_product(service: ProductCatalogService, product_id: int, requester: Requester) -> Product:
    product = await _visible_product(service, product_id, requester)
    if not can_modify(product, requester):
        raise HTTPException(403, detail="Not allowed to modify this product")
    return product


# ============================================================================
# Read
# ============================================================================

@router.get("", response_model=List[ProductOut])
async def list_products(
    category_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    products = await _service(db, store).list_products(requester, category_id=category_id, search=search)
    return [ProductOut.from_row(p) for p in products]


@router.get("/{product_id}", response_model=ProductOut)
async def get_product(
    product_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    product = await _visible_product(_service(db, store), product_id, requester)
    return ProductOut.from_row(product)


# ============================================================================
# Write
# ============================================================================

@router.post("", response_model=ProductOut, status_code=201)
async def create_product(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    category_id: Optional[str] = Form(None),
    storage_type: Optional[str] = Form(None),
    storage_location: Optional[str] = Form(None),
    storage_url: Optional[str] = Form(None),
    has_physical_variant: Optional[str] = Form(None),
    physical_price: Optional[str] = Form(None),
    is_public: Optional[str] = Form(None),
    hidden: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    """Create a product (multipart). Admin products are unowned; others belong to the caller."""
    fields = dict(
        name=name, description=description, price=price, stock=stock,
        category_id=category_id, storage_url=storage_url,
        has_physical_variant=has_physical_variant, physical_price=physical_price,
        is_public=is_public, hidden=hidden,
    )
    upload = await _read_upload(file)
    try:
        product = await _service(db, store).create_product(
            requester_for(user), fields,
            storage_type=storage_type, storage_location=storage_location, upload=upload,
        )
    except StorefrontError as e:
        raise http_error(e)
    return ProductOut.from_row(product)


@router.patch("/{product_id}", response_model=ProductOut)
async def update_product(
    product_id: int,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    category_id: Optional[str] = Form(None),
    storage_type: Optional[str] = Form(None),
    storage_location: Optional[str] = Form(None),
    storage_url: Optional[str] = Form(None),
    has_physical_variant: Optional[str] = Form(None),
    physical_price: Optional[str] = Form(None),
    is_public: Optional[str] = Form(None),
    hidden: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    """Partial update: only the submitted fields change."""
    requester = requester_for(user)
    service = _service(db, store)
    product = await _modifiable_product(service, product_id, requester)
    fields = dict(
        name=name, description=description, price=price, stock=stock,
        category_id=category_id, storage_url=storage_url,
        has_physical_variant=has_physical_variant, physical_price=physical_price,
        is_public=is_public, hidden=hidden,
    )
    upload = await _read_upload(file)
    try:
        product = await service.update_product(
            product, requester, fields,
            storage_type=storage_type, storage_location=storage_location, upload=upload,
        )
    except StorefrontError as e:
        raise http_error(e)
    return ProductOut.from_row(product)


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    requester = requester_for(user)
    service = _service(db, store)
    product = await _modifiable_product(service, product_id, requester)
    try:
        await service.delete_product(product)
    except StorefrontError as e:
        raise http_error(e)
    return {"message": "Product deleted", "id": product_id}


@router.delete("/{product_id}/storage/{slot}")
async def delete_product_storage(
    product_id: int,
    slot: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    """Clear one media slot; repeating the call is a no-op."""
    if slot not in STORAGE_SLOTS:
        raise HTTPException(400, detail=f"Invalid storage type '{slot}'. Expected one of: {', '.join(STORAGE_SLOTS)}")
    requester = requester_for(user)
    service = _service(db, store)
    product = await _modifiable_product(service, product_id, requester)
    changed = await service.clear_storage(product, slot)
    return {
        "message": f"{slot} cleared" if changed else f"{slot} already empty",
        "cleared": changed,
        "product": ProductOut.from_row(product).model_dump(mode="json"),
    }


# ============================================================================
# Binary streaming
# ============================================================================

def _file_response(store: MediaStore, public_path: str, media_type: Optional[str], headers: dict) -> FileResponse:
    target = store.resolve_file(public_path)
    if target is None or not target.is_file():
        raise HTTPException(404, detail="File not found")
    return FileResponse(
        path=str(target),
        media_type=media_type or mimetypes.guess_type(str(target))[0] or "application/octet-stream",
        headers=headers,
    )


async def _image_response(product: Product, store: MediaStore, attachment: bool):
    disposition = "attachment" if attachment else "inline"
    if product.image_data:
        try:
            payload, content_type = decode_image_data(product.image_data)
        except StorefrontError as e:
            logger.error("Product %s has unreadable image_data: %s", product.id, e.message)
            raise HTTPException(500, detail="Stored image is corrupt")
        ext = _EXT_BY_TYPE.get(content_type, "img")
        headers = {"Content-Disposition": f'{disposition}; filename="product-{product.id}.{ext}"'}
        return Response(content=payload, media_type=content_type, headers=headers)
    if product.image_file:
        name = product.image_file.rsplit("/", 1)[-1]
        return _file_response(store, product.image_file, None, {"Content-Disposition": f'{disposition}; filename="{name}"'})
    raise HTTPException(404, detail="No image for this product")


@router.get("/{product_id}/img")
async def get_product_image(
    product_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    product = await _visible_product(_service(db, store), product_id, requester)
    return await _image_response(product, store, attachment=False)


@router.get("/{product_id}/download/image")
async def download_product_image(
    product_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    product = await _visible_product(_service(db, store), product_id, requester)
    return await _image_response(product, store, attachment=True)


@router.get("/{product_id}/pdf")
async def get_product_pdf(
    product_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    product = await _visible_product(_service(db, store), product_id, requester)
    headers = {"Content-Disposition": f'inline; filename="product-{product.id}.pdf"'}
    if product.pdf_data:
        try:
            payload = decode_pdf_data(product.pdf_data)
        except StorefrontError as e:
            logger.error("Product %s has unreadable pdf_data: %s", product.id, e.message)
            raise HTTPException(500, detail="Stored PDF is corrupt")
        return Response(content=payload, media_type="application/pdf", headers=headers)
    if product.pdf_file:
        return _file_response(store, product.pdf_file, "application/pdf", headers)
    raise HTTPException(404, detail="No PDF for this product")
