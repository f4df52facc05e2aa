# linestamp/routes/tokens.py
from __future__ import annotations

import json
import logging

import stripe
from fastapi import APIRouter, Body, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from linestamp.core.errors import BadRequestError, InternalError, NotFoundError
from linestamp.models.catalog import TOKEN_PACKAGES
from linestamp.routes.helpers import get_settings_dep, get_store
from linestamp.services import token_ledger
from linestamp.services.auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tokens", tags=["tokens"])


class CheckoutIn(BaseModel):
    tokenPackage: str = ""


def _stripe_mode(k: str) -> str:
    if not k or not k.startswith("sk_"):
        return "invalid"
    return "live" if k.startswith("sk_live_") else "test"


@router.post("/checkout-session")
def create_checkout_session(data: CheckoutIn, user=Depends(get_current_user), settings=Depends(get_settings_dep)):
    """Stripe-hosted Checkout for one token package; the webhook credits the tokens."""
    package = TOKEN_PACKAGES.get(data.tokenPackage)
    if not package:
        raise BadRequestError("Invalid token package")
    if _stripe_mode(settings.stripe_secret_key or "") == "invalid":
        raise InternalError("Stripe is not configured. Set STRIPE_SECRET_KEY to a secret key (sk_...).")

    stripe.api_key = settings.stripe_secret_key
    frontend = settings.frontend_url.rstrip("/")
    try:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": settings.stripe_currency,
                    "product_data": {"name": package.name, "description": package.description},
                    "unit_amount": package.price,
                },
                "quantity": 1,
            }],
            mode="payment",
            success_url=f"{frontend}/dashboard?payment=success",
            cancel_url=f"{frontend}/purchase?payment=cancel",
            metadata={"userId": user["uid"], "tokenPackage": package.id},
        )
    except Exception as e:
        logger.error("Checkout session creation error: %s", e)
        raise InternalError("Failed to create checkout session") from e

    return {"sessionId": session.id}


@router.get("/balance")
def balance(user=Depends(get_current_user), store=Depends(get_store)):
    doc = store.get_user(user["uid"])
    if doc is None:
        raise NotFoundError("User not found")
    return {"balance": int(doc.get("tokenBalance") or 0)}


@router.post("/consume")
def consume(payload: dict = Body(default_factory=dict), user=Depends(get_current_user), store=Depends(get_store)):
    stamp_id = payload.get("stampId")
    amount = payload.get("amount")
    if not stamp_id or isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise BadRequestError("stampId and positive amount are required")

    remaining = token_ledger.consume(store, user["uid"], stamp_id, amount)
    return {"success": True, "remainingBalance": remaining}


# ---- Webhook ---------------------------------------------------------------

@router.post("/webhook/stripe")
async def stripe_webhook(request: Request, settings=Depends(get_settings_dep)):
    """
    Credits purchased tokens on ``checkout.session.completed``.
    Configure the Stripe endpoint to POST here: https://<api-domain>/tokens/webhook/stripe
    """
    webhook_secret = settings.stripe_webhook_secret
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not set")
        raise InternalError("Webhook secret not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or ""
    try:
        stripe.WebhookSignature.verify_header(payload.decode("utf-8"), sig_header, webhook_secret)
        event = json.loads(payload)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise BadRequestError("Invalid webhook signature")
    if not isinstance(event, dict):
        raise BadRequestError("Invalid webhook payload")

    if event.get("type") == "checkout.session.completed":
        sess = (event.get("data") or {}).get("object") or {}
        metadata = sess.get("metadata") or {}
        user_id = metadata.get("userId")
        package_id = metadata.get("tokenPackage")
        if not user_id or not package_id:
            logger.error("Missing metadata in webhook: %s", metadata)
            raise BadRequestError("Invalid metadata")

        package = TOKEN_PACKAGES.get(package_id)
        if not package:
            logger.error("Invalid token package in webhook: %s", package_id)
            raise BadRequestError("Invalid token package")

        store = get_store(request)
        try:
            await run_in_threadpool(
                token_ledger.credit, store, user_id, package.tokens,
                package_id=package.id, session_id=sess.get("id"),
            )
        except Exception as e:
            # non-2xx makes Stripe redeliver
            logger.exception("Webhook processing error")
            raise InternalError("Failed to process webhook") from e

    return {"received": True}
