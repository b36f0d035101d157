from fastapi import APIRouter, Request, Body, Depends
from fastapi.responses import JSONResponse
from typing import Optional
from sqlalchemy.orm import Session

from core.auth import get_identity_from_request, get_uid_from_request
from core.config import logger
from core.database import get_db
from models.listing import Listing
from models.purchase import Transaction
from models.user import User
from utils.catalog import purchased_ids
from utils.settlement import ensure_user

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/profile")
async def get_profile(userId: Optional[str] = None, db: Session = Depends(get_db)):
    if not userId:
        return JSONResponse({"error": "User ID required"}, status_code=400)
    user = db.query(User).filter(User.uid == userId).first()
    if not user or not user.github_link:
        return {}
    return {"githubLink": user.github_link}


@router.post("/profile")
async def update_profile(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    user_id = str(payload.get("userId") or "").strip()
    if not user_id:
        return JSONResponse({"error": "User ID required"}, status_code=400)

    uid, email = get_identity_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    if uid != user_id:
        return JSONResponse({"error": "Forbidden"}, status_code=403)

    try:
        user = ensure_user(db, uid, email)
        if "githubLink" in payload:
            link = payload.get("githubLink")
            user.github_link = str(link).strip() if link else None
        db.commit()
    except Exception as ex:
        db.rollback()
        logger.error(f"[user] profile update failed for {uid}: {ex}")
        return JSONResponse({"error": "Failed to update profile"}, status_code=500)

    profile = {"githubLink": user.github_link} if user.github_link else {}
    return {"message": "Profile updated successfully", "profile": profile}


@router.get("/apis")
async def get_user_apis(request: Request, userId: Optional[str] = None, db: Session = Depends(get_db)):
    """Listings submitted by ``userId``. Endpoints are included only for that user's own token."""
    if not userId:
        return JSONResponse({"error": "User ID required"}, status_code=400)
    try:
        rows = db.query(Listing).filter(Listing.user_id == userId).order_by(Listing.created_at.asc()).all()
    except Exception as ex:
        logger.error(f"[user] listing lookup failed for {userId}: {ex}")
        return JSONResponse({"error": "Failed to fetch APIs"}, status_code=500)
    is_owner = get_uid_from_request(request) == userId
    return {"apis": [l.to_dict(include_endpoint=is_owner) for l in rows]}


@router.post("/sync")
async def sync_user(request: Request, payload: Optional[dict] = Body(default=None), db: Session = Depends(get_db)):
    """Create the account row on first sign-up or first Google sign-in."""
    uid, email = get_identity_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    display_name = str(((payload or {}).get("displayName") if payload else "") or "").strip()
    if not display_name and email:
        display_name = email.split("@")[0]

    try:
        user = ensure_user(db, uid, email)
        if display_name and not user.display_name:
            user.display_name = display_name
        db.commit()
        db.refresh(user)
    except Exception as ex:
        db.rollback()
        logger.error(f"[user] sync failed for {uid}: {ex}")
        return JSONResponse({"error": "Failed to sync user"}, status_code=500)

    return {"user": user.to_dict(purchased_ids=sorted(purchased_ids(db, uid)))}


@router.get("/dashboard")
async def dashboard(request: Request, db: Session = Depends(get_db)):
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    user = db.query(User).filter(User.uid == uid).first()
    owned = purchased_ids(db, uid)
    purchased = db.query(Listing).filter(Listing.id.in_(sorted(owned))).all() if owned else []
    published = db.query(Listing).filter(Listing.user_id == uid).order_by(Listing.created_at.asc()).all()
    sales = (
        db.query(Transaction)
        .filter(Transaction.seller_id == uid)
        .order_by(Transaction.created_at.desc())
        .limit(10)
        .all()
    )
    return {
        "earnings": float(user.earnings or 0) if user else 0.0,
        "credits": float(user.credits or 0) if user else 0.0,
        "purchasedAPIs": [l.to_dict(include_endpoint=True) for l in purchased],
        "publishedAPIs": [l.to_dict(include_endpoint=True) for l in published],
        "transactions": [t.to_dict() for t in sales],
    }
