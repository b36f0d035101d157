from typing import Dict, Any, Optional
import httpx
from core.config import logger, STRIPE_API_BASE, STRIPE_SECRET_KEY, PAYMENT_CURRENCY, MINOR_UNITS_PER_MAJOR


class PaymentProcessorError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PaymentConfigError(PaymentProcessorError):
    def __init__(self, message: str):
        super().__init__(message, status_code=500)


def to_minor_units(price: float) -> int:
    """Listing prices are major units; the processor charges minor units."""
    return int(round(float(price or 0) * MINOR_UNITS_PER_MAJOR))


def build_headers() -> dict:
    api_key = (STRIPE_SECRET_KEY or "").strip()
    if not api_key:
        raise PaymentConfigError("Payment processor is not configured (STRIPE_SECRET_KEY missing)")
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json",
        "User-Agent": "APIMarketplaceBackend/1.0",
    }


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except Exception:
        data = {}
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    return f"Payment processor error: {resp.status_code}"


async def _request(method: str, path: str, data: Optional[dict] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
    headers = build_headers()
    url = f"{STRIPE_API_BASE}{path}"
    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
            resp = await client.request(method, url, headers=headers, data=data)
    except httpx.HTTPError as ex:
        logger.error(f"[stripe] {method} {path} failed: {ex}")
        raise PaymentProcessorError(f"Payment processor unreachable: {ex}")
    if resp.status_code not in (200, 201):
        message = _error_message(resp)
        logger.warning(f"[stripe] {method} {path} -> {resp.status_code}: {message}")
        raise PaymentProcessorError(message, status_code=400 if resp.status_code in (400, 402) else 502)
    try:
        return resp.json()
    except Exception:
        raise PaymentProcessorError("Payment processor returned an invalid response")


async def create_payment_intent(amount: int, api_id: str, currency: str = PAYMENT_CURRENCY, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
    """Create a payment intent for ``amount`` minor units, tagged with the listing id.

    Returns {clientSecret, paymentIntentId, amount, currency}.
    """
    form = {
        "amount": str(int(amount)),
        "currency": (currency or PAYMENT_CURRENCY).lower(),
        "metadata[apiId]": api_id,
        "automatic_payment_methods[enabled]": "true",
    }
    logger.info(f"[stripe] creating payment intent for api {api_id} amount={amount} {form['currency']}")
    data = await _request("POST", "/v1/payment_intents", data=form, transport=transport)
    return {
        "clientSecret": data.get("client_secret"),
        "paymentIntentId": data.get("id"),
        "amount": data.get("amount", int(amount)),
        "currency": data.get("currency", form["currency"]),
    }


async def retrieve_payment_intent(intent_id: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
    if not intent_id or "/" in intent_id:
        raise PaymentProcessorError("Invalid payment intent id", status_code=400)
    return await _request("GET", f"/v1/payment_intents/{intent_id}", transport=transport)
