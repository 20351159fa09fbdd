# storefront/routers/users.py
"""
Users Router - admin user management, own profile, per-owner listings.
"""
from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import get_requester, require_admin, require_user
from storefront.database import get_session
from storefront.db_models import User
from storefront.deps import get_media_store, http_error
from storefront.errors import StorefrontError
from storefront.models import (
    AdminUserIn, AdminUserUpdate, CategoryOut, ProductOut, ProfileOut, ProfileUpdate,
)
from storefront.services.accounts import UserService
from storefront.services.catalog import CategoryService, ProductCatalogService
from storefront.services.media_store import MediaStore
from storefront.services.visibility import Requester

router = APIRouter(prefix="/api", tags=["Users"])


async def _existing_user(service: UserService, user_id: int) -> User:
    user = await service.get_user(user_id)
    if user is None:
        raise HTTPException(404, detail="User not found")
    return user


# ============================================================================
# Admin
# ============================================================================

@router.get("/admin/users", response_model=List[ProfileOut])
async def list_users(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return [ProfileOut.from_row(u) for u in await UserService(db).list_users()]


@router.get("/admin/users/{user_id}", response_model=ProfileOut)
async def get_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return ProfileOut.from_row(await _existing_user(UserService(db), user_id))


@router.post("/admin/users", response_model=ProfileOut, status_code=201)
async def create_user(
    payload: AdminUserIn,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    try:
        user = await UserService(db).create_user(payload.model_dump())
    except StorefrontError as e:
        raise http_error(e)
    return ProfileOut.from_row(user)


@router.put("/admin/users/{user_id}", response_model=ProfileOut)
async def update_user(
    user_id: int,
    payload: AdminUserUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    service = UserService(db)
    user = await _existing_user(service, user_id)
    try:
        user = await service.update_user(user, payload.model_dump(exclude_unset=True))
    except StorefrontError as e:
        raise http_error(e)
    return ProfileOut.from_row(user)


@router.delete("/admin/users/{user_id}")
async def delete_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    service = UserService(db)
    user = await _existing_user(service, user_id)
    try:
        await service.delete_user(user, acting_user_id=admin.id)
    except StorefrontError as e:
        raise http_error(e)
    return {"message": "User deleted", "id": user_id}


# ============================================================================
# Own profile
# ============================================================================

@router.get("/user/profile", response_model=ProfileOut)
async def get_profile(user: User = Depends(require_user)):
    return ProfileOut.from_row(user)


@router.patch("/user/profile", response_model=ProfileOut)
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    user = await UserService(db).update_profile(user, payload.model_dump(exclude_unset=True))
    return ProfileOut.from_row(user)


# ============================================================================
# Per-owner listings (same visibility rule as the catalog)
# ============================================================================

@router.get("/users/{user_id}/products", response_model=List[ProductOut])
async def products_of_user(
    user_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
    store: MediaStore = Depends(get_media_store),
):
    products = await ProductCatalogService(db, store).list_products(requester, owner_id=user_id)
    return [ProductOut.from_row(p) for p in products]


@router.get("/users/{user_id}/categories", response_model=List[CategoryOut])
async def categories_of_user(
    user_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_session),
):
    categories = await CategoryService(db).list_categories(requester, owner_id=user_id)
    return [CategoryOut.from_row(c) for c in categories]
