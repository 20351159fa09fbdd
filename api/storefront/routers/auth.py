# storefront/routers/auth.py
"""
Auth Router - registration, bearer-token login, current user.
"""
from __future__ import annotations
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import create_access_token, get_password_hash, require_user, verify_password
from storefront.database import get_session
from storefront.db_models import User
from storefront.models import RegisterIn, Token, UserOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])


def _user_out(user: User) -> UserOut:
    return UserOut(id=user.id, username=user.username, email=user.email, is_admin=bool(user.is_admin))


def _token_for(user: User) -> Token:
    return Token(access_token=create_access_token({"sub": str(user.id)}), user=_user_out(user))


@router.post("/register", response_model=Token, status_code=201)
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_session)):
    existing = await db.execute(select(User).where(User.username == payload.username))
    if existing.scalar_one_or_none():
        raise HTTPException(400, detail="Username already exists")
    user_count = (await db.execute(select(func.count(User.id)))).scalar() or 0
    user = User(
        username=payload.username,
        password=get_password_hash(payload.password),
        email=payload.email,
        is_admin=user_count == 0,  # first account administers the shop
    )
    db.add(user)
    await db.flush()
    logger.info("Registered user %s (admin=%s)", user.username, user.is_admin)
    return _token_for(user)


@router.post("/login", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_session)):
    result = await db.execute(select(User).where(User.username == form_data.username))
    user = result.scalar_one_or_none()
    if not user or not verify_password(form_data.password, user.password):
        raise HTTPException(401, detail="Incorrect username or password")
    return _token_for(user)


@router.post("/logout")
async def logout():
    # tokens are stateless; the client drops its copy
    return {"message": "Logged out"}


@router.get("/user", response_model=UserOut)
async def current_user(user: User = Depends(require_user)):
    return _user_out(user)
