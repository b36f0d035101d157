from fastapi import APIRouter, Request, Depends, Body
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.auth import get_uid_from_request
from core.config import logger
from core.database import get_db
from models.listing import Listing
from utils.rate_limit import check_rate_limit, client_key
from utils.submission import SubmissionRejected, submit_listing

router = APIRouter(prefix="/api", tags=["submit"])


@router.post("/submit")
async def submit_api(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    """Add a new API listing to the marketplace.

    The submitter is the verified token holder when a bearer token is sent,
    otherwise the optional ``userId`` in the body (anonymous allowed).
    """
    token_uid = get_uid_from_request(request)
    user_id = token_uid or (str(payload.get("userId")).strip() if payload.get("userId") else None)

    allowed, msg = check_rate_limit("submit", client_key(request, token_uid))
    if not allowed:
        return JSONResponse({"success": False, "error": msg}, status_code=429)

    try:
        listing = submit_listing(db, payload, user_id)
        total = db.query(Listing).count()
    except SubmissionRejected as rej:
        return JSONResponse({"success": False, "error": rej.message}, status_code=rej.status_code)
    except Exception as ex:
        db.rollback()
        logger.error(f"[submit] failed: {ex}")
        return JSONResponse({"success": False, "error": str(ex) or "Unknown error"}, status_code=500)

    return JSONResponse({
        "success": True,
        "message": "API added successfully to the marketplace",
        "api": listing.to_dict(include_endpoint=True),
        "totalCount": total,
    }, status_code=201)
