from fastapi import APIRouter, HTTPException, Request, Depends, Query
from fastapi.responses import JSONResponse
from typing import Optional, List
from sqlalchemy.orm import Session

from core.auth import get_uid_from_request
from core.config import logger, PAYMENT_CURRENCY
from core.database import get_db
from models.listing import Listing
from utils.catalog import (
    filter_listings,
    derive_categories,
    category_preview,
    suggest,
    resolve_listing,
    purchased_ids,
    access_state,
)
from utils.scraper import scrape_docs

router = APIRouter(prefix="/api/apis", tags=["catalog"])


@router.get("")
async def list_apis(
    filter: Optional[List[str]] = Query(default=None),
    filters: Optional[str] = None,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Catalog browser: every active filter token must match name, description or category."""
    try:
        listings = db.query(Listing).order_by(Listing.created_at.asc()).all()
        tokens = list(filter or [])
        if filters:
            tokens.append(filters)
        visible = filter_listings(listings, tokens)
        categories = derive_categories(listings)
        preview, has_more = category_preview(categories)
        return {
            "apis": [l.to_dict() for l in visible],
            "count": len(visible),
            "total": len(listings),
            "categories": categories,
            "visibleCategories": preview,
            "hasMoreCategories": has_more,
            "suggestions": [{"id": l.id, "API": l.name, "Category": l.category} for l in suggest(listings, q or "")],
        }
    except Exception as e:
        logger.error(f"[catalog] list failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load catalog: {str(e)}")


@router.get("/{identifier}")
async def get_api_detail(
    identifier: str,
    request: Request,
    scrape: bool = True,
    db: Session = Depends(get_db),
):
    """Resolve a listing by id or name and gate its real endpoint behind ownership or purchase."""
    listing = resolve_listing(db, identifier)
    if not listing:
        return JSONResponse({"error": "API not found"}, status_code=404)

    uid = get_uid_from_request(request)
    owned = purchased_ids(db, uid)
    state = access_state(listing, uid, owned)
    granted = state == "granted"

    access = {"state": state, "isPaid": bool(listing.is_paid)}
    if not granted:
        access["price"] = float(listing.price or 0)
        access["currency"] = PAYMENT_CURRENCY

    docs = None
    if scrape:
        try:
            docs = await scrape_docs(listing.link)
        except Exception as ex:
            # scrape_docs already degrades to data; the listing must still render
            logger.warning(f"[catalog] docs lookup failed for {listing.id}: {ex}")
            docs = None

    return {
        "api": listing.to_dict(include_endpoint=granted),
        "access": access,
        "docs": docs,
    }
