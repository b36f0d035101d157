"""
Submission validation and listing creation.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import logger, MIN_PAID_PRICE, MAX_PAID_PRICE
from models.listing import Listing
from utils.url_guard import UnsafeURLError, parse_http_url

AUTH_TAGS = {"", "none", "apikey", "oauth", "basic", "bearer"}
CORS_TAGS = {"yes", "no", "unknown"}


class SubmissionRejected(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _text(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return str(value).strip() if value is not None else ""


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "off", "")
    return bool(value)


def validate_submission(payload: Dict[str, Any]) -> Tuple[bool, str]:
    """Validate a submission form, in order. Returns (is_valid, error_message)."""
    if not _text(payload, "name"):
        return False, "API name is required"
    if not _text(payload, "description"):
        return False, "API description is required"
    link = _text(payload, "link")
    if not link:
        return False, "API link is required"
    try:
        parse_http_url(link)
    except UnsafeURLError:
        return False, "Invalid API link URL"

    endpoint = _text(payload, "endpoint")
    if endpoint:
        try:
            parse_http_url(endpoint)
        except UnsafeURLError:
            return False, "Invalid API endpoint URL"

    if _as_bool(payload.get("isPaid"), False):
        try:
            price = float(payload.get("price"))
        except (TypeError, ValueError):
            return False, f"Price is required for paid APIs (minimum {MIN_PAID_PRICE:.2f})"
        if not math.isfinite(price):
            return False, f"Price is required for paid APIs (minimum {MIN_PAID_PRICE:.2f})"
        if price < MIN_PAID_PRICE:
            return False, f"Price must be at least {MIN_PAID_PRICE:.2f}"
        if price > MAX_PAID_PRICE:
            return False, f"Price must be at most {MAX_PAID_PRICE:.2f}"
    return True, ""


def build_listing(payload: Dict[str, Any], user_id: Optional[str]) -> Listing:
    is_paid = _as_bool(payload.get("isPaid"), False)
    link = _text(payload, "link")
    auth = _text(payload, "auth")
    if auth.lower() not in AUTH_TAGS:
        auth = ""
    cors = _text(payload, "cors").lower()
    return Listing(
        name=_text(payload, "name"),
        description=_text(payload, "description"),
        link=link,
        category=_text(payload, "category") or "General",
        auth=auth,
        https=_as_bool(payload.get("https"), True),
        cors=cors if cors in CORS_TAGS else "unknown",
        is_paid=is_paid,
        price=float(payload.get("price")) if is_paid else 0.0,
        endpoint=_text(payload, "endpoint") or link,
        user_id=user_id or None,
        created_at=datetime.now(timezone.utc),
    )


def find_duplicate(db: Session, name: str, link: str) -> Optional[Listing]:
    return db.query(Listing).filter(or_(Listing.name == name, Listing.link == link)).first()


def submit_listing(db: Session, payload: Dict[str, Any], user_id: Optional[str]) -> Listing:
    """Validate and persist a new listing.

    The duplicate lookup only gives an early, friendly error; the unique
    indexes on name and link decide races between concurrent submissions.
    """
    ok, err = validate_submission(payload)
    if not ok:
        raise SubmissionRejected(err, 400)

    listing = build_listing(payload, user_id)
    if find_duplicate(db, listing.name, listing.link):
        raise SubmissionRejected("API already exists in the list", 409)

    db.add(listing)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"[submit] unique constraint rejected '{listing.name}'")
        raise SubmissionRejected("API already exists in the list", 409)
    db.refresh(listing)
    logger.info(f"[submit] created listing {listing.id} '{listing.name}' paid={listing.is_paid}")
    return listing
