# storefront/db_models.py
"""
SQLAlchemy ORM Models for the storefront.

users, categories, products, orders, order_items.
"""
from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List
import enum

from sqlalchemy import (
    String, Integer, Boolean, Text, DateTime,
    Numeric, ForeignKey, Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base

# ============================================================================
# ENUMS (stored as plain strings)
# ============================================================================

class OrderStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"


class VariantType(str, enum.Enum):
    digital = "digital"
    physical = "physical"


class AssetType(str, enum.Enum):
    image = "image"
    pdf = "pdf"


class StorageLocation(str, enum.Enum):
    database = "database"
    file = "file"


# Clearable media slots (storage_url is edited through the product form)
STORAGE_SLOTS = ("image_file", "image_data", "pdf_file", "pdf_data")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# MIXIN for updated_at
# ============================================================================

class TimestampMixin:
    """Mixin for created_at and updated_at columns."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )


# ============================================================================
# 1. USERS
# ============================================================================

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Profile (all optional, edited from account settings)
    first_name: Mapped[Optional[str]] = mapped_column(Text)
    last_name: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    address: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(Text)
    state: Mapped[Optional[str]] = mapped_column(Text)
    country: Mapped[Optional[str]] = mapped_column(Text)
    postal_code: Mapped[Optional[str]] = mapped_column(Text)
    picture: Mapped[Optional[str]] = mapped_column(Text)
    bio: Mapped[Optional[str]] = mapped_column(Text)
    job_title: Mapped[Optional[str]] = mapped_column(Text)
    company: Mapped[Optional[str]] = mapped_column(Text)
    website: Mapped[Optional[str]] = mapped_column(Text)
    linkedin_url: Mapped[Optional[str]] = mapped_column(Text)
    twitter_url: Mapped[Optional[str]] = mapped_column(Text)
    instagram_url: Mapped[Optional[str]] = mapped_column(Text)
    facebook_url: Mapped[Optional[str]] = mapped_column(Text)

    # Relationships
    orders: Mapped[List["Order"]] = relationship(back_populates="user")


# ============================================================================
# 2. CATEGORIES (self-referential tree, owner-scoped)
# ============================================================================

class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    parent_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("categories.id"))
    # NULL = system/admin category
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"))
    is_public: Mapped[Optional[bool]] = mapped_column(Boolean, default=True)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_categories_parent_id", "parent_id"),
        Index("idx_categories_user_id", "user_id"),
        Index("idx_categories_hidden", "hidden"),
    )


# ============================================================================
# 3. PRODUCTS
# ============================================================================

class Product(TimestampMixin, Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # digital price
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # physical stock only
    category_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("categories.id"))

    # Media slots - several may be populated at once, see services.media_resolver
    image_file: Mapped[Optional[str]] = mapped_column(Text)
    image_data: Mapped[Optional[str]] = mapped_column(Text)  # JSON envelope or legacy raw base64
    pdf_file: Mapped[Optional[str]] = mapped_column(Text)
    pdf_data: Mapped[Optional[str]] = mapped_column(Text)
    storage_url: Mapped[Optional[str]] = mapped_column(Text)

    # Variants
    has_physical_variant: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    physical_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    # Ownership / visibility, user_id NULL = admin product
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"))
    is_public: Mapped[Optional[bool]] = mapped_column(Boolean, default=True)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_products_user_id", "user_id"),
        Index("idx_products_category", "category_id"),
        Index("idx_products_hidden", "hidden"),
    )


# ============================================================================
# 4. ORDERS
# ============================================================================

class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.pending.value, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="orders")
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_orders_user", "user_id"),
    )


# ============================================================================
# 5. ORDER ITEMS (price is a snapshot at purchase time)
# ============================================================================

class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    variant_type: Mapped[str] = mapped_column(String(20), default=VariantType.digital.value, nullable=False)

    # Relationships
    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()

    __table_args__ = (
        Index("idx_order_items_order", "order_id"),
        Index("idx_order_items_product", "product_id"),
    )
