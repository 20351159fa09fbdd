import os
import tempfile

# must be set before storefront.settings is imported
os.environ.setdefault("STOREFRONT_DATA_ROOT", tempfile.mkdtemp(prefix="storefront-test-"))
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import hashlib
import hmac
import json
import time
from decimal import Decimal
from typing import Any, Dict, List

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront import db_models  # noqa: F401  registers tables
from storefront.database import Base, get_session
from storefront.deps import get_media_store, get_stripe_gateway, get_url_proxy
from storefront.services.checkout import CheckoutLineItem, StripeGateway
from storefront.services.media_store import MediaStore
from storefront.services.url_proxy import UrlProxy

WEBHOOK_SECRET = "whsec_test_secret"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 24


class FakeStripeGateway(StripeGateway):
    """Records checkout sessions and serves canned line items; signature checks stay real."""

    def __init__(self):
        super().__init__(secret_key="", webhook_secret=WEBHOOK_SECRET, currency="usd")
        self.created: List[Dict[str, Any]] = []
        self.line_items: Dict[str, List[CheckoutLineItem]] = {}

    async def create_checkout_session(self, **params) -> Dict[str, Any]:
        self.created.append(params)
        session_id = f"cs_test_{len(self.created)}"
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    async def list_line_items(self, session_id: str) -> List[CheckoutLineItem]:
        return list(self.line_items.get(session_id, []))


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def completed_event(session_obj: Dict[str, Any]) -> bytes:
    return json.dumps({
        "id": "evt_test",
        "type": "checkout.session.completed",
        "data": {"object": session_obj},
    }).encode("utf-8")


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


# ============================================================================
# App / client
# ============================================================================

@pytest.fixture
def uploads_root(tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def gateway():
    return FakeStripeGateway()


@pytest.fixture
def proxy_handler():
    """Replace in a test to script upstream responses for the proxy routes."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)
    return {"handler": handler}


@pytest.fixture
def app(session_factory, uploads_root, gateway, proxy_handler):
    from storefront.main import app

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    transport = httpx.MockTransport(lambda request: proxy_handler["handler"](request))
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_media_store] = lambda: MediaStore(uploads_root)
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    app.dependency_overrides[get_url_proxy] = lambda: UrlProxy(transport=transport)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def register(client: httpx.AsyncClient, username: str, password: str = "secret") -> Dict[str, Any]:
    resp = await client.post("/api/register", json={"username": username, "password": password})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return {
        "id": body["user"]["id"],
        "is_admin": body["user"]["is_admin"],
        "headers": {"Authorization": f"Bearer {body['access_token']}"},
    }


@pytest.fixture
async def admin(client):
    return await register(client, "admin")


@pytest.fixture
async def alice(client, admin):
    return await register(client, "alice")


@pytest.fixture
async def bob(client, admin):
    return await register(client, "bob")


async def create_product(client, headers, files=None, **fields) -> Dict[str, Any]:
    data = {"name": "Widget", "price": "10.00"}
    data.update({k: str(v) for k, v in fields.items()})
    resp = await client.post("/api/products", data=data, files=files, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))
