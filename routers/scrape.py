from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from typing import Optional

from utils.rate_limit import check_rate_limit, client_key
from utils.scraper import scrape_docs

router = APIRouter(prefix="/api", tags=["scrape"])


@router.get("/scrape")
async def scrape(request: Request, url: Optional[str] = None):
    """Scrape a documentation page. Scrape failures are reported in the body with a 200."""
    if not url or not url.strip():
        return JSONResponse({"error": "URL parameter is required"}, status_code=400)

    allowed, msg = check_rate_limit("scrape", client_key(request))
    if not allowed:
        return JSONResponse({"error": msg}, status_code=429)

    result = await scrape_docs(url.strip())
    return JSONResponse(result, status_code=200)
