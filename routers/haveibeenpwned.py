from fastapi import APIRouter, Request, Body
from fastapi.responses import JSONResponse

from core.config import logger
from utils.pwned import PwnedUpstreamError, check_password
from utils.rate_limit import check_rate_limit, client_key

router = APIRouter(prefix="/api", tags=["haveibeenpwned"])


@router.post("/haveibeenpwned")
async def haveibeenpwned(request: Request, payload: dict = Body(...)):
    password = payload.get("password")
    if not password or not isinstance(password, str):
        return JSONResponse({"error": "Missing required parameter: password"}, status_code=400)

    allowed, msg = check_rate_limit("pwned", client_key(request))
    if not allowed:
        return JSONResponse({"error": msg}, status_code=429)

    try:
        return await check_password(password)
    except PwnedUpstreamError as ex:
        return JSONResponse({"error": ex.message, "status": ex.status_code}, status_code=ex.status_code)
    except Exception as ex:
        logger.error(f"[pwned] proxy error: {ex}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
