import math

from fastapi import APIRouter, Request, Depends, Body
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.orm import Session

from core.auth import get_identity_from_request, get_user_email_from_uid
from core.config import logger, PAYMENT_CURRENCY, PROCESSOR_MIN_AMOUNT, MINOR_UNITS_PER_MAJOR
from core.database import get_db
from models.listing import Listing
from utils.catalog import can_view_endpoint, purchased_ids
from utils.settlement import CheckoutState, settle_purchase
from utils.stripe_payments import (
    PaymentProcessorError,
    create_payment_intent,
    retrieve_payment_intent,
    to_minor_units,
)

router = APIRouter(prefix="/api", tags=["checkout"])


class CheckoutSessionPayload(BaseModel):
    apiId: str


class CheckoutCompletePayload(BaseModel):
    apiId: str
    paymentIntentId: Optional[str] = None
    payment_intent: Optional[str] = None  # processor redirect query param name


def _min_amount_message() -> str:
    return f"Amount must be at least {PROCESSOR_MIN_AMOUNT / MINOR_UNITS_PER_MAJOR:.2f} {PAYMENT_CURRENCY.upper()}"


def _failed(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"state": CheckoutState.FAILED.value, "error": message}, status_code=status_code)


@router.post("/create-payment-intent")
async def create_intent(payload: dict = Body(...)):
    """Create a payment intent for ``amount`` minor units tagged with ``apiId``."""
    api_id = str(payload.get("apiId") or "").strip()
    amount = payload.get("amount")
    if not api_id or amount in (None, "", 0):
        return JSONResponse({"error": "Missing apiId or amount"}, status_code=400)
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        return JSONResponse({"error": "Amount must be a number"}, status_code=400)
    if not math.isfinite(amount):
        return JSONResponse({"error": "Amount must be a number"}, status_code=400)
    if amount < PROCESSOR_MIN_AMOUNT:
        return JSONResponse({"error": _min_amount_message()}, status_code=400)

    try:
        intent = await create_payment_intent(int(round(amount)), api_id)
    except PaymentProcessorError as ex:
        return JSONResponse({"error": ex.message}, status_code=ex.status_code)

    return {"clientSecret": intent["clientSecret"], "paymentIntentId": intent["paymentIntentId"]}


@router.post("/checkout/session")
async def start_checkout(request: Request, payload: CheckoutSessionPayload, db: Session = Depends(get_db)):
    """Price the listing server-side and open a payment intent for the signed-in buyer."""
    uid, _ = get_identity_from_request(request)
    if not uid:
        return _failed("Unauthorized", 401)

    api_id = (payload.apiId or "").strip()
    listing = db.query(Listing).filter(Listing.id == api_id).first() if api_id else None
    if not listing:
        return _failed("API not found", 404)
    if not listing.is_paid:
        return _failed("This API is free", 400)
    if can_view_endpoint(listing, uid, purchased_ids(db, uid)):
        return {"state": CheckoutState.RECONCILED.value, "alreadyOwned": True, "api": listing.to_dict(include_endpoint=True)}

    amount = to_minor_units(listing.price)
    if amount < PROCESSOR_MIN_AMOUNT:
        return _failed(_min_amount_message(), 400)

    logger.info(f"[checkout] {CheckoutState.INTENT_REQUESTED.value} uid={uid} api={listing.id} amount={amount}")
    try:
        intent = await create_payment_intent(amount, listing.id)
    except PaymentProcessorError as ex:
        return _failed(ex.message, ex.status_code)

    return {
        "state": CheckoutState.INTENT_READY.value,
        "clientSecret": intent["clientSecret"],
        "paymentIntentId": intent["paymentIntentId"],
        "amount": amount,
        "currency": PAYMENT_CURRENCY,
        "api": listing.to_dict(),
    }


@router.post("/checkout/complete")
async def complete_checkout(request: Request, payload: CheckoutCompletePayload, db: Session = Depends(get_db)):
    """Reconcile after the processor redirects back: verify the intent, then settle once."""
    uid, email = get_identity_from_request(request)
    if not uid:
        return _failed("Unauthorized", 401)

    api_id = (payload.apiId or "").strip()
    intent_id = (payload.paymentIntentId or payload.payment_intent or "").strip()
    if not api_id or not intent_id:
        return _failed("Missing apiId or paymentIntentId", 400)

    listing = db.query(Listing).filter(Listing.id == api_id).first()
    if not listing:
        return _failed("API not found", 404)

    try:
        intent = await retrieve_payment_intent(intent_id)
    except PaymentProcessorError as ex:
        return _failed(ex.message, ex.status_code)

    metadata = intent.get("metadata") or {}
    if metadata.get("apiId") != listing.id:
        logger.warning(f"[checkout] intent {intent_id} is for {metadata.get('apiId')}, not {listing.id}")
        return _failed("Payment does not match this API", 400)
    if intent.get("status") != "succeeded":
        return _failed(f"Payment not completed (status: {intent.get('status') or 'unknown'})", 402)
    if int(intent.get("amount") or 0) < to_minor_units(listing.price):
        return _failed("Payment amount does not match the API price", 400)

    buyer_email = email or get_user_email_from_uid(uid)
    try:
        result = settle_purchase(
            db,
            listing,
            buyer_uid=uid,
            buyer_email=buyer_email,
            payment_intent_id=intent_id,
            currency=intent.get("currency") or PAYMENT_CURRENCY,
        )
    except Exception as ex:
        logger.error(f"[checkout] settlement failed for {uid}/{listing.id}: {ex}")
        return _failed("Failed to process payment. Please contact support.", 500)

    body = result.to_dict()
    body["api"] = listing.to_dict(include_endpoint=True)
    return body
