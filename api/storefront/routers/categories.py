# storefront/routers/categories.py
"""
Categories Router - category CRUD and the navigation tree.
"""
from __future__ import annotations
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import get_requester, require_user, requester_for
from storefront.database import get_session
from storefront.db_models import Category, User
from storefront.deps import http_error
from storefront.errors import StorefrontError
from storefront.models import CategoryIn, CategoryNode, CategoryOut, CategoryPatch
from storefront.services.catalog import CategoryService
from storefront.services.visibility import Requester, can_modify

router = APIRouter(prefix="/api/categories", tags=["Categories"])


def _node(entry: Dict[str, Any]) -> CategoryNode:
    base = CategoryOut.from_row(entry["category"]).model_dump()
    return CategoryNode(**base, children=[_node(child) for child in entry["children"]])


async def _modifiable(service: CategoryService, category_id: int, requester: Requester) -> Category:
    category = await service.get_category(category_id, requester)
    if category is None:
        raise HTTPException(404, detail="Category not found")
    if not can_modify(category, requester):
        raise HTTPException(403, detail="Not allowed to modify this category")
    return category


@router.get("", response_model=List[CategoryOut])
async def list_categories(
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
):
    categories = await CategoryService(db).list_categories(requester)
    return [CategoryOut.from_row(c) for c in categories]


@router.get("/tree", response_model=List[CategoryNode])
async def category_tree(
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
):
    """Navigation tree; hidden categories are left out even for admins."""
    roots = await CategoryService(db).tree(requester)
    return [_node(r) for r in roots]


@router.get("/{category_id}", response_model=CategoryOut)
async def get_category(
    category_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
):
    category = await CategoryService(db).get_category(category_id, requester)
    if category is None:
        raise HTTPException(404, detail="Category not found")
    return CategoryOut.from_row(category)


@router.post("", response_model=CategoryOut, status_code=201)
async def create_category(
    payload: CategoryIn,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        category = await CategoryService(db).create_category(requester_for(user), payload.model_dump())
    except StorefrontError as e:
        raise http_error(e)
    return CategoryOut.from_row(category)


@router.put("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: int,
    payload: CategoryPatch,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    requester = requester_for(user)
    service = CategoryService(db)
    category = await _modifiable(service, category_id, requester)
    try:
        category = await service.update_category(category, requester, payload.model_dump(exclude_unset=True))
    except StorefrontError as e:
        raise http_error(e)
    return CategoryOut.from_row(category)


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    requester = requester_for(user)
    service = CategoryService(db)
    category = await _modifiable(service, category_id, requester)
    try:
        await service.delete_category(category)
    except StorefrontError as e:
        raise http_error(e)
    return {"message": "Category deleted", "id": category_id}
