# storefront/services/catalog.py
"""
Product Catalog Service - product and category CRUD behind the visibility rule.

Handles:
- Form field parsing/validation (PATCH semantics: only supplied keys change)
- Media uploads via MediaStore
- Delete guards (ordered products, non-empty categories)
- Category parent-chain cycle detection
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import transaction
from storefront.db_models import (
    Product, Category, OrderItem, AssetType, StorageLocation, STORAGE_SLOTS,
)
from storefront.errors import ConflictError, MediaStoreError, ValidationFailed
from storefront.services.media_store import MediaStore
from storefront.services.visibility import (
    Requester, is_visible, is_tree_visible, visibility_filter,
)

logger = logging.getLogger(__name__)

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}
_NULL = {"", "null", "none", "undefined"}


@dataclass
class Upload:
    content: bytes
    filename: str = ""
    content_type: Optional[str] = None


# ============================================================================
# Field parsing
# ============================================================================

def _is_null(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip().lower() in _NULL)


def parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValidationFailed(f"Invalid value for {name}: expected true/false")


def parse_decimal(name: str, value: Any, nullable: bool = False) -> Optional[Decimal]:
    if _is_null(value):
        if nullable:
            return None
        raise ValidationFailed(f"{name} is required")
    try:
        d = Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        raise ValidationFailed(f"Invalid {name}: must be a number")
    if not d.is_finite() or d < 0:
        raise ValidationFailed(f"Invalid {name}: must be a non-negative number")
    return d.quantize(Decimal("0.01"))


def parse_int(name: str, value: Any, nullable: bool = False, minimum: Optional[int] = None) -> Optional[int]:
    if _is_null(value):
        if nullable:
            return None
        raise ValidationFailed(f"{name} is required")
    try:
        n = int(str(value).strip())
    except ValueError:
        raise ValidationFailed(f"Invalid {name}: must be an integer")
    if minimum is not None and n < minimum:
        raise ValidationFailed(f"Invalid {name}: must be >= {minimum}")
    return n


def parse_product_fields(raw: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    """Validate submitted product fields; absent (None) keys are skipped."""
    supplied = {k: v for k, v in raw.items() if v is not None}
    out: Dict[str, Any] = {}

    if "name" in supplied or not partial:
        name = str(supplied.get("name") or "").strip()
        if not name:
            raise ValidationFailed("name is required")
        out["name"] = name
    if "description" in supplied:
        out["description"] = None if _is_null(supplied["description"]) else str(supplied["description"])
    if "price" in supplied or not partial:
        out["price"] = parse_decimal("price", supplied.get("price"))
    if "stock" in supplied:
        out["stock"] = parse_int("stock", supplied["stock"], minimum=0)
    if "category_id" in supplied:
        out["category_id"] = parse_int("category_id", supplied["category_id"], nullable=True)
    if "storage_url" in supplied:
        url = str(supplied["storage_url"]).strip()
        out["storage_url"] = None if _is_null(url) else url
    if "has_physical_variant" in supplied:
        out["has_physical_variant"] = parse_bool("has_physical_variant", supplied["has_physical_variant"])
    if "physical_price" in supplied:
        out["physical_price"] = parse_decimal("physical_price", supplied["physical_price"], nullable=True)
    if "is_public" in supplied:
        out["is_public"] = parse_bool("is_public", supplied["is_public"])
    if "hidden" in supplied:
        out["hidden"] = parse_bool("hidden", supplied["hidden"])
    return out


def parse_storage_choice(
    storage_type: Optional[str],
    storage_location: Optional[str],
    upload: Optional[Upload],
) -> Optional[tuple]:
    """Returns (AssetType, StorageLocation) when an upload should be stored."""
    if not _is_null(storage_type):
        try:
            asset_type = AssetType(str(storage_type).strip().lower())
        except ValueError:
            raise ValidationFailed(f"Invalid storage_type '{storage_type}': expected 'image' or 'pdf'")
    elif upload is not None:
        is_pdf = (upload.content_type or "").lower() == "application/pdf" or upload.filename.lower().endswith(".pdf")
        asset_type = AssetType.pdf if is_pdf else AssetType.image
    else:
        return None

    if _is_null(storage_location):
        location = StorageLocation.database
    else:
        try:
            location = StorageLocation(str(storage_location).strip().lower())
        except ValueError:
            raise ValidationFailed(f"Invalid storage_location '{storage_location}': expected 'database' or 'file'")
    return asset_type, location


# ============================================================================
# Products
# ============================================================================

class ProductCatalogService:
    """Product CRUD scoped to one request's session."""

    def __init__(self, db: AsyncSession, store: MediaStore):
        self.db = db
        self.store = store

    async def list_products(
        self,
        requester: Requester,
        category_id: Optional[int] = None,
        search: Optional[str] = None,
        owner_id: Optional[int] = None,
    ) -> List[Product]:
        stmt = select(Product).order_by(Product.created_at.desc(), Product.id.desc())
        clause = visibility_filter(Product, requester)
        if clause is not None:
            stmt = stmt.where(clause)
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)
        if owner_id is not None:
            stmt = stmt.where(Product.user_id == owner_id)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_product(self, product_id: int, requester: Requester) -> Optional[Product]:
        product = await self.db.get(Product, product_id)
        if product is None or not is_visible(product, requester):
            return None
        return product

    async def _check_category(self, category_id: Optional[int], requester: Requester) -> None:
        if category_id is None:
            return
        category = await self.db.get(Category, category_id)
        if category is None or not is_visible(category, requester):
            raise ValidationFailed(f"Category {category_id} not found")

    def _apply_upload(self, product: Product, choice: Optional[tuple], upload: Optional[Upload], failure: str) -> None:
        if choice is None or upload is None:
            return
        asset_type, location = choice
        try:
            self.store.store(
                product,
                upload.content,
                asset_type,
                location,
                original_name=upload.filename,
                content_type=upload.content_type,
            )
        except MediaStoreError as e:
            logger.error("%s: %s", failure, e.message)
            raise MediaStoreError(failure)

    async def create_product(
        self,
        requester: Requester,
        raw_fields: Dict[str, Any],
        storage_type: Optional[str] = None,
        storage_location: Optional[str] = None,
        upload: Optional[Upload] = None,
    ) -> Product:
        fields = parse_product_fields(raw_fields, partial=False)
        choice = parse_storage_choice(storage_type, storage_location, upload)
        if choice is not None and upload is None and not fields.get("storage_url"):
            raise ValidationFailed(f"A file is required for storage type '{choice[0].value}'")
        await self._check_category(fields.get("category_id"), requester)

        values: Dict[str, Any] = {
            "stock": 0,
            "has_physical_variant": False,
            "hidden": False,
            "is_public": bool(requester.is_admin),
            "user_id": None if requester.is_admin else requester.user_id,
        }
        values.update(fields)
        product = Product(**values)
        self._apply_upload(product, choice, upload, "Failed to create product")
        self.db.add(product)
        await self.db.flush()
        logger.info("Created product %s (%s) owner=%s", product.id, product.name, product.user_id)
        return product

    async def update_product(
        self,
        product: Product,
        requester: Requester,
        raw_fields: Dict[str, Any],
        storage_type: Optional[str] = None,
        storage_location: Optional[str] = None,
        upload: Optional[Upload] = None,
    ) -> Product:
        fields = parse_product_fields(raw_fields, partial=True)
        # storage_type without a new file keeps the current media
        choice = parse_storage_choice(storage_type, storage_location, upload)
        if "category_id" in fields:
            await self._check_category(fields["category_id"], requester)

        for key, value in fields.items():
            setattr(product, key, value)
        self._apply_upload(product, choice, upload, "Failed to update product")
        await self.db.flush()
        logger.info("Updated product %s fields=%s upload=%s", product.id, sorted(fields), upload is not None)
        return product

    async def ordered_item_count(self, product_id: int) -> int:
        result = await self.db.execute(
            select(OrderItem.id).where(OrderItem.product_id == product_id).limit(1)
        )
        return len(result.scalars().all())

    async def delete_product(self, product: Product) -> None:
        if await self.ordered_item_count(product.id):
            raise ConflictError(
                "This product has been ordered and cannot be deleted. Set its stock to 0 instead.",
                "PRODUCT_HAS_ORDERS",
                productIds=[product.id],
            )
        image_file, pdf_file = product.image_file, product.pdf_file
        async with transaction(self.db):
            await self.db.delete(product)
        # files go only after the delete is committed
        self.store.unlink_quietly(image_file)
        self.store.unlink_quietly(pdf_file)
        logger.info("Deleted product %s", product.id)

    async def clear_storage(self, product: Product, slot: str) -> bool:
        previous = getattr(product, slot) if slot in STORAGE_SLOTS else None
        changed = self.store.clear_slot(product, slot)
        if changed:
            async with transaction(self.db):
                await self.db.flush()
            if slot.endswith("_file"):
                self.store.unlink_quietly(previous)
            logger.info("Cleared %s on product %s", slot, product.id)
        return changed


# ============================================================================
# Categories
# ============================================================================

class CategoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_categories(self, requester: Requester, owner_id: Optional[int] = None) -> List[Category]:
        stmt = select(Category).order_by(Category.name, Category.id)
        clause = visibility_filter(Category, requester)
        if clause is not None:
            stmt = stmt.where(clause)
        if owner_id is not None:
            stmt = stmt.where(Category.user_id == owner_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def tree(self, requester: Requester) -> List[Dict[str, Any]]:
        """Nested navigation tree; a hidden category hides its whole subtree."""
        result = await self.db.execute(select(Category).order_by(Category.name, Category.id))
        rows = [c for c in result.scalars().all() if is_tree_visible(c, requester)]
        visible_ids = {c.id for c in rows}
        nodes: Dict[int, Dict[str, Any]] = {c.id: {"category": c, "children": []} for c in rows}
        roots: List[Dict[str, Any]] = []
        for c in rows:
            if c.parent_id is None:
                roots.append(nodes[c.id])
            elif c.parent_id in visible_ids:
                nodes[c.parent_id]["children"].append(nodes[c.id])
        return roots

    async def get_category(self, category_id: int, requester: Requester) -> Optional[Category]:
        category = await self.db.get(Category, category_id)
        if category is None or not is_visible(category, requester):
            return None
        return category

    async def _check_parent(self, parent_id: Optional[int], requester: Requester) -> None:
        if parent_id is None:
            return
        parent = await self.db.get(Category, parent_id)
        if parent is None or not is_visible(parent, requester):
            raise ValidationFailed(f"Parent category {parent_id} not found")

    async def assert_no_cycle(self, category_id: int, parent_id: Optional[int]) -> None:
        """Walk the ancestors of ``parent_id``; meeting ``category_id`` means a cycle."""
        current = parent_id
        seen = set()
        while current is not None:
            if current == category_id:
                raise ConflictError(
                    "A category cannot be its own ancestor",
                    "CATEGORY_CYCLE",
                    categoryIds=[category_id],
                )
            if current in seen:
                break  # pre-existing loop above us
            seen.add(current)
            row = await self.db.get(Category, current)
            current = row.parent_id if row is not None else None

    async def create_category(self, requester: Requester, data: Dict[str, Any]) -> Category:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationFailed("name is required")
        await self._check_parent(data.get("parent_id"), requester)
        is_public = data.get("is_public")
        category = Category(
            name=name,
            description=data.get("description"),
            parent_id=data.get("parent_id"),
            user_id=None if requester.is_admin else requester.user_id,
            is_public=bool(requester.is_admin) if is_public is None else is_public,
            hidden=bool(data.get("hidden") or False),
        )
        self.db.add(category)
        await self.db.flush()
        logger.info("Created category %s (%s)", category.id, category.name)
        return category

    async def update_category(self, category: Category, requester: Requester, patch: Dict[str, Any]) -> Category:
        if "name" in patch:
            name = str(patch["name"] or "").strip()
            if not name:
                raise ValidationFailed("name is required")
            patch["name"] = name
        if "parent_id" in patch:
            await self._check_parent(patch["parent_id"], requester)
            await self.assert_no_cycle(category.id, patch["parent_id"])
        if "hidden" in patch and patch["hidden"] is None:
            patch.pop("hidden")
        for key, value in patch.items():
            setattr(category, key, value)
        await self.db.flush()
        return category

    async def delete_category(self, category: Category) -> None:
        result = await self.db.execute(select(Category.id).where(Category.parent_id == category.id))
        child_ids = list(result.scalars().all())
        if child_ids:
            raise ConflictError(
                "Category has subcategories; move or delete them first",
                "CATEGORY_HAS_CHILDREN",
                categoryIds=child_ids,
            )
        result = await self.db.execute(select(Product.id).where(Product.category_id == category.id))
        product_ids = list(result.scalars().all())
        if product_ids:
            raise ConflictError(
                "Category still contains products; reassign them first",
                "CATEGORY_HAS_PRODUCTS",
                productIds=product_ids,
            )
        await self.db.delete(category)
        await self.db.flush()
        logger.info("Deleted category %s", category.id)
