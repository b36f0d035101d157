"""
Catalog browsing, listing resolution and endpoint entitlement.
"""
from typing import Iterable, List, Optional, Sequence, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import CATEGORY_PREVIEW_COUNT, SUGGESTION_LIMIT
from models.listing import Listing
from models.purchase import Purchase


def normalize_tokens(raw: Iterable[str]) -> List[str]:
    """Split comma-separated filter values, trim, lower-case and drop blanks."""
    tokens: List[str] = []
    for value in raw or []:
        for part in str(value or "").split(","):
            token = part.strip().lower()
            if token and token not in tokens:
                tokens.append(token)
    return tokens


def _fields(listing: Listing) -> List[str]:
    return [(listing.name or "").lower(), (listing.description or "").lower(), (listing.category or "").lower()]


def _matches(fields: Sequence[str], token: str) -> bool:
    """A token must sit inside a single field, never across two."""
    return any(token in f for f in fields)


def matches_all(listing: Listing, tokens: Sequence[str]) -> bool:
    fields = _fields(listing)
    return all(_matches(fields, t) for t in tokens)


def filter_listings(listings: Sequence[Listing], tokens: Iterable[str]) -> List[Listing]:
    """Keep listings that contain every active token in name, description or category.

    No active tokens keeps everything, in the original order.
    """
    active = normalize_tokens(tokens)
    if not active:
        return list(listings)
    return [l for l in listings if matches_all(l, active)]


def derive_categories(listings: Sequence[Listing]) -> List[str]:
    seen: List[str] = []
    for l in listings:
        cat = (l.category or "").strip()
        if cat and cat not in seen:
            seen.append(cat)
    return seen


def category_preview(categories: List[str], limit: int = CATEGORY_PREVIEW_COUNT) -> tuple[List[str], bool]:
    return categories[:limit], len(categories) > limit


def suggest(listings: Sequence[Listing], text: str, limit: int = SUGGESTION_LIMIT) -> List[Listing]:
    if not text:
        return []
    needle = text.lower()
    out: List[Listing] = []
    for l in listings:
        if _matches(_fields(l), needle):
            out.append(l)
            if len(out) >= limit:
                break
    return out


def resolve_listing(db: Session, identifier: str) -> Optional[Listing]:
    """Find a listing by id, then exact name, then case-insensitive name or slug."""
    key = (identifier or "").strip()
    if not key:
        return None
    listing = db.query(Listing).filter(Listing.id == key).first()
    if listing:
        return listing
    listing = db.query(Listing).filter(Listing.name == key).first()
    if listing:
        return listing
    listing = db.query(Listing).filter(func.lower(Listing.name) == key.lower()).first()
    if listing:
        return listing
    wanted = key.lower()
    for candidate in db.query(Listing).order_by(Listing.created_at.asc()).all():
        if candidate.slug() == wanted:
            return candidate
    return None


def purchased_ids(db: Session, uid: Optional[str]) -> Set[str]:
    if not uid:
        return set()
    rows = db.query(Purchase.api_id).filter(Purchase.buyer_uid == uid).all()
    return {r[0] for r in rows}


def can_view_endpoint(listing: Listing, viewer_uid: Optional[str], purchased: Set[str]) -> bool:
    if not listing.is_paid:
        return True
    if viewer_uid and listing.user_id and viewer_uid == listing.user_id:
        return True
    return listing.id in (purchased or set())


def access_state(listing: Listing, viewer_uid: Optional[str], purchased: Set[str]) -> str:
    if can_view_endpoint(listing, viewer_uid, purchased):
        return "granted"
    if not viewer_uid:
        return "sign_in_required"
    return "purchase_required"
