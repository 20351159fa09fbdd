# storefront/services/accounts.py
"""
Account Service - admin user management and self-service profile edits.

Handles:
- Username uniqueness on create/rename
- Password rehash only when a new one is supplied
- Delete guards (self, orders, owned products/categories)
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import get_password_hash
from storefront.db_models import Category, Order, Product, User
from storefront.errors import ConflictError, ValidationFailed

logger = logging.getLogger(__name__)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_users(self) -> List[User]:
        result = await self.db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def _assert_username_free(self, username: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(User.id).where(User.username == username)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        if (await self.db.execute(stmt)).first() is not None:
            raise ValidationFailed("Username already exists")

    async def create_user(self, data: Dict[str, Any]) -> User:
        username = _clean(data.get("username"))
        if not username:
            raise ValidationFailed("username is required")
        if not data.get("password"):
            raise ValidationFailed("password is required")
        await self._assert_username_free(username)
        user = User(
            username=username,
            password=get_password_hash(data["password"]),
            email=_clean(data.get("email")),
            first_name=_clean(data.get("first_name")),
            last_name=_clean(data.get("last_name")),
            is_admin=bool(data.get("is_admin") or False),
        )
        self.db.add(user)
        await self.db.flush()
        logger.info("Admin created user %s (admin=%s)", user.username, user.is_admin)
        return user

    async def update_user(self, user: User, patch: Dict[str, Any]) -> User:
        if "username" in patch and patch["username"] is not None:
            username = _clean(patch["username"])
            if not username:
                raise ValidationFailed("username is required")
            if username != user.username:
                await self._assert_username_free(username, exclude_id=user.id)
            user.username = username
        if patch.get("password"):
            user.password = get_password_hash(patch["password"])
        for key in ("email", "first_name", "last_name"):
            if key in patch:
                setattr(user, key, _clean(patch[key]))
        if patch.get("is_admin") is not None:
            user.is_admin = bool(patch["is_admin"])
        await self.db.flush()
        logger.info("Admin updated user %s fields=%s", user.id, sorted(patch))
        return user

    async def _ids(self, column, owner_column, user_id: int) -> List[int]:
        result = await self.db.execute(select(column).where(owner_column == user_id).order_by(column))
        return list(result.scalars().all())

    async def delete_user(self, user: User, acting_user_id: int) -> None:
        if user.id == acting_user_id:
            raise ValidationFailed("You cannot delete your own account")
        order_ids = await self._ids(Order.id, Order.user_id, user.id)
        if order_ids:
            raise ConflictError(
                "User has orders and cannot be deleted",
                "USER_HAS_ORDERS",
                orderIds=order_ids,
            )
        product_ids = await self._ids(Product.id, Product.user_id, user.id)
        if product_ids:
            raise ConflictError(
                "User still owns products; delete or reassign them first",
                "USER_HAS_PRODUCTS",
                productIds=product_ids,
            )
        category_ids = await self._ids(Category.id, Category.user_id, user.id)
        if category_ids:
            raise ConflictError(
                "User still owns categories; delete or reassign them first",
                "USER_HAS_CATEGORIES",
                categoryIds=category_ids,
            )
        await self.db.delete(user)
        await self.db.flush()
        logger.info("Admin deleted user %s", user.id)

    async def update_profile(self, user: User, patch: Dict[str, Any]) -> User:
        """Apply only the keys present in ``patch``; blank strings become NULL."""
        for key, value in patch.items():
            setattr(user, key, _clean(value))
        await self.db.flush()
        logger.info("User %s updated profile fields=%s", user.id, sorted(patch))
        return user
