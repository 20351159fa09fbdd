# storefront/routers/checkout.py
"""
Checkout Router - Stripe Checkout session + webhook.

The webhook reads the raw request body before anything parses it; the
signature is computed over the exact bytes Stripe sent.
"""
from __future__ import annotations
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import require_user, requester_for
from storefront.database import get_session
from storefront.db_models import User
from storefront.deps import get_stripe_gateway, http_error
from storefront.errors import StorefrontError, WebhookSignatureError
from storefront.models import CheckoutIn, CheckoutOut
from storefront.services.checkout import CheckoutService, StripeGateway
from storefront.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Checkout"])


@router.post("/create-checkout-session", response_model=CheckoutOut)
async def create_checkout_session(
    payload: CheckoutIn,
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    base_url = settings.PUBLIC_BASE_URL or str(request.base_url)
    try:
        session = await CheckoutService(db, gateway).create_checkout_session(
            requester_for(user), payload.items, base_url
        )
    except StorefrontError as e:
        raise http_error(e)
    return CheckoutOut(url=session["url"], id=session.get("id"))


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    logger.info(
        "Webhook received: %d bytes, Stripe-Signature %s",
        len(payload), "present" if sig_header else "missing",
    )

    try:
        event = gateway.verify_event(payload, sig_header)
    except WebhookSignatureError as e:
        logger.warning("Webhook rejected: %s", e.message)
        raise http_error(e)

    event_type = event.get("type")
    if event_type != "checkout.session.completed":
        logger.info("Ignoring webhook event %s", event_type)
        return {"received": True}

    session_obj = (event.get("data") or {}).get("object") or {}
    try:
        order = await CheckoutService(db, gateway).fulfil_checkout(session_obj)
    except Exception as e:
        # always acknowledged so Stripe does not redeliver
        logger.exception("Order creation failed for checkout session %s", session_obj.get("id"))
        return {"received": True, "error": str(e)}
    return {"received": True, "orderId": order.id}
