from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List, Literal
from pydantic import BaseModel, Field

from storefront.services.media_resolver import resolve_media

# ----------------------------------------------------------------------------
# Auth
# ----------------------------------------------------------------------------

class RegisterIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    email: Optional[str] = None

class UserOut(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    is_admin: bool = False

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut

# ----------------------------------------------------------------------------
# Users / profile
# ----------------------------------------------------------------------------

PROFILE_FIELDS = (
    "first_name", "last_name", "phone", "address", "city", "state", "country",
    "postal_code", "picture", "bio", "job_title", "company", "website",
    "linkedin_url", "twitter_url", "instagram_url", "facebook_url",
)

class ProfileUpdate(BaseModel):
    """PATCH body; only the fields sent are changed, blank strings clear a field."""
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    picture: Optional[str] = None
    bio: Optional[str] = None
    job_title: Optional[str] = None
    company: Optional[str] = None
    website: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None
    instagram_url: Optional[str] = None
    facebook_url: Optional[str] = None

class ProfileOut(UserOut):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    picture: Optional[str] = None
    bio: Optional[str] = None
    job_title: Optional[str] = None
    company: Optional[str] = None
    website: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None
    instagram_url: Optional[str] = None
    facebook_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, user) -> "ProfileOut":
        data = {name: getattr(user, name) for name in PROFILE_FIELDS}
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            is_admin=bool(user.is_admin),
            created_at=user.created_at,
            **data,
        )

class AdminUserIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_admin: bool = False

class AdminUserUpdate(BaseModel):
    """Empty or missing password keeps the current one."""
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_admin: Optional[bool] = None

# ----------------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------------

class MediaOut(BaseModel):
    kind: Literal["image", "pdf", "none"]
    source: Literal["local_path", "api_endpoint", "proxied_url", "none"]
    src: Optional[str] = None
    slot: Optional[str] = None

class ProductOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    stock: int = 0
    category_id: Optional[int] = None
    image_file: Optional[str] = None
    pdf_file: Optional[str] = None
    storage_url: Optional[str] = None
    has_image_data: bool = False
    has_pdf_data: bool = False
    has_physical_variant: bool = False
    physical_price: Optional[Decimal] = None
    user_id: Optional[int] = None
    is_public: Optional[bool] = None
    hidden: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    media: MediaOut

    @classmethod
    def from_row(cls, p) -> "ProductOut":
        return cls(
            id=p.id,
            name=p.name,
            description=p.description,
            price=p.price,
            stock=p.stock or 0,
            category_id=p.category_id,
            image_file=p.image_file,
            pdf_file=p.pdf_file,
            storage_url=p.storage_url,
            has_image_data=bool(p.image_data),
            has_pdf_data=bool(p.pdf_data),
            has_physical_variant=bool(p.has_physical_variant),
            physical_price=p.physical_price,
            user_id=p.user_id,
            is_public=p.is_public,
            hidden=bool(p.hidden),
            created_at=p.created_at,
            updated_at=p.updated_at,
            media=MediaOut(**resolve_media(p).to_dict()),
        )

# ----------------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------------

class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_public: Optional[bool] = None
    hidden: bool = False

class CategoryPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_public: Optional[bool] = None
    hidden: Optional[bool] = None

class CategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    user_id: Optional[int] = None
    is_public: Optional[bool] = None
    hidden: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, c) -> "CategoryOut":
        return cls(
            id=c.id,
            name=c.name,
            description=c.description,
            parent_id=c.parent_id,
            user_id=c.user_id,
            is_public=c.is_public,
            hidden=bool(c.hidden),
            created_at=c.created_at,
        )

class CategoryNode(CategoryOut):
    children: List["CategoryNode"] = Field(default_factory=list)

# ----------------------------------------------------------------------------
# Checkout / orders
# ----------------------------------------------------------------------------

class CartItemIn(BaseModel):
    id: int = Field(..., description="Product id")
    quantity: int = Field(1, ge=1)
    variant_type: Literal["digital", "physical"] = "digital"
    name: Optional[str] = None
    price: Optional[Decimal] = None

class CheckoutIn(BaseModel):
    items: List[CartItemIn] = Field(..., min_length=1)

class CheckoutOut(BaseModel):
    url: str
    id: Optional[str] = None

class OrderItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal
    variant_type: str
    product: Optional[Dict[str, Any]] = None

class OrderOut(BaseModel):
    id: int
    user_id: int
    status: str
    total: Decimal
    created_at: Optional[datetime] = None
    username: Optional[str] = None
    items: List[OrderItemOut] = Field(default_factory=list)

class OrderStatusIn(BaseModel):
    status: str

CategoryNode.model_rebuild()
