# storefront/services/checkout.py
"""
Checkout / Order Service - Stripe Checkout session + webhook fulfilment.

Flow:
    cart -> create_checkout_session() -> Stripe hosted page
    Stripe -> POST /api/webhook (checkout.session.completed) -> fulfil_checkout()

Fulfilment writes the order, its items and the physical stock decrements in one
transaction. It is not idempotent (a redelivered event creates a second order)
and the stock check-and-decrement is not serialized across requests.
"""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from storefront.database import transaction
from storefront.db_models import Product, Order, OrderItem, OrderStatus, VariantType
from storefront.errors import CheckoutError, ValidationFailed, WebhookSignatureError
from storefront.services.visibility import Requester, is_visible

logger = logging.getLogger(__name__)

CENTS = Decimal("100")


@dataclass
class CheckoutLineItem:
    name: str
    quantity: int
    unit_amount: int  # minor units
    amount_total: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)


def _plain(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


# ============================================================================
# Stripe gateway
# ============================================================================

class StripeGateway:
    """Thin wrapper over the Stripe SDK; blocking calls run in the thread pool."""

    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        if secret_key:
            stripe.api_key = secret_key
            logger.info("Using Stripe key with prefix: %s", secret_key[:8])

    async def create_checkout_session(self, **params) -> Dict[str, Any]:
        if not self.secret_key:
            raise CheckoutError("Stripe is not configured")
        session = await run_in_threadpool(stripe.checkout.Session.create, **params)
        return {"id": session.id, "url": session.url}

    def verify_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """Verify the signature over the exact raw body, then parse it."""
        if not sig_header:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                sig_header,
                self.webhook_secret,
                stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Webhook signature verification failed: {e}")
        except UnicodeDecodeError:
            raise WebhookSignatureError("Webhook payload is not UTF-8")
        try:
            return json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid webhook payload: {e}")

    async def list_line_items(self, session_id: str) -> List[CheckoutLineItem]:
        listing = await run_in_threadpool(
            stripe.checkout.Session.list_line_items,
            session_id,
            limit=100,
            expand=["data.price.product"],
        )
        items: List[CheckoutLineItem] = []
        for li in _attr(listing, "data", []) or []:
            price = _attr(li, "price")
            product = _attr(price, "product")
            metadata = _plain(_attr(product, "metadata")) if product is not None and not isinstance(product, str) else {}
            quantity = int(_attr(li, "quantity", 1) or 1)
            unit_amount = _attr(price, "unit_amount")
            amount_total = _attr(li, "amount_total")
            if unit_amount is None and amount_total is not None:
                unit_amount = int(amount_total) // max(quantity, 1)
            items.append(CheckoutLineItem(
                name=_attr(li, "description") or _attr(product, "name", "") or "",
                quantity=quantity,
                unit_amount=int(unit_amount or 0),
                amount_total=amount_total,
                metadata={str(k): str(v) for k, v in metadata.items()},
            ))
        return items


# ============================================================================
# Checkout service
# ============================================================================

def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * CENTS).quantize(Decimal("1")))


def from_minor_units(amount: Optional[int]) -> Decimal:
    return (Decimal(int(amount or 0)) / CENTS).quantize(Decimal("0.01"))


def buyer_id_from_session(session_obj: Dict[str, Any]) -> Optional[int]:
    raw = session_obj.get("client_reference_id") or (session_obj.get("metadata") or {}).get("userId")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


class CheckoutService:
    def __init__(self, db: AsyncSession, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    async def build_line_items(self, requester: Requester, items: List[Any]) -> List[Dict[str, Any]]:
        """Cart -> Stripe line_items using server-side product prices."""
        line_items: List[Dict[str, Any]] = []
        for item in items:
            product = await self.db.get(Product, item.id)
            if product is None or not is_visible(product, requester):
                raise ValidationFailed(f"Product {item.id} not found")
            variant = VariantType(item.variant_type)
            if variant == VariantType.physical:
                if not product.has_physical_variant or product.physical_price is None:
                    raise ValidationFailed(f"Product {product.id} has no physical variant")
                unit_price = product.physical_price
            else:
                unit_price = product.price
            line_items.append({
                "quantity": int(item.quantity),
                "price_data": {
                    "currency": self.gateway.currency,
                    "unit_amount": to_minor_units(unit_price),
                    "product_data": {
                        "name": product.name,
                        "metadata": {
                            "product_id": str(product.id),
                            "variant_type": variant.value,
                        },
                    },
                },
            })
        return line_items

    async def create_checkout_session(self, requester: Requester, items: List[Any], base_url: str) -> Dict[str, Any]:
        line_items = await self.build_line_items(requester, items)
        base_url = base_url.rstrip("/")
        params = dict(
            payment_method_types=["card"],
            mode="payment",
            line_items=line_items,
            success_url=f"{base_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/checkout/cancel",
            client_reference_id=str(requester.user_id),
            metadata={"userId": str(requester.user_id)},
        )
        logger.info(
            "Creating Stripe checkout session for user %s: %s",
            requester.user_id,
            [(li["price_data"]["product_data"]["name"], li["quantity"]) for li in line_items],
        )
        try:
            session = await self.gateway.create_checkout_session(**params)
        except stripe.StripeError as e:
            logger.error("Stripe checkout session failed: %s", e)
            raise CheckoutError(f"Failed to create checkout session: {e}")
        logger.info("Stripe session created: %s", session.get("id"))
        return session

    async def _match_product(self, line: CheckoutLineItem) -> Optional[Product]:
        product_id = line.metadata.get("product_id")
        if product_id and product_id.isdigit():
            product = await self.db.get(Product, int(product_id))
            if product is not None:
                return product
        # legacy sessions carry only the display name
        result = await self.db.execute(select(Product).where(Product.name == line.name).limit(1))
        return result.scalar_one_or_none()

    async def fulfil_checkout(self, session_obj: Dict[str, Any]) -> Order:
        """Materialize the order for a completed checkout session."""
        user_id = buyer_id_from_session(session_obj)
        if user_id is None:
            raise CheckoutError("No user id on checkout session")

        session_id = session_obj.get("id")
        line_items = await self.gateway.list_line_items(session_id)
        logger.info("Fulfilling checkout %s for user %s (%d line items)", session_id, user_id, len(line_items))

        async with transaction(self.db):
            order = Order(
                user_id=user_id,
                status=OrderStatus.pending.value,
                total=from_minor_units(session_obj.get("amount_total")),
            )
            self.db.add(order)
            await self.db.flush()

            for line in line_items:
                product = await self._match_product(line)
                if product is None:
                    logger.warning("No product matches line item '%s'; skipped", line.name)
                    continue
                try:
                    variant = VariantType(line.metadata.get("variant_type") or VariantType.digital.value)
                except ValueError:
                    variant = VariantType.digital
                self.db.add(OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    quantity=line.quantity,
                    price=from_minor_units(line.unit_amount),
                    variant_type=variant.value,
                ))
                if variant == VariantType.physical:
                    # read-modify-write, floored at zero; concurrent buyers can oversell
                    product.stock = max(0, (product.stock or 0) - line.quantity)
            await self.db.flush()

        logger.info("Order %s created: total=%s", order.id, order.total)
        return order
