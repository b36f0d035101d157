from fastapi import APIRouter, Request, Body
from fastapi.responses import JSONResponse
import json
import httpx

from core.config import logger, PROXY_TIMEOUT_SEC
from utils.rate_limit import check_rate_limit, client_key
from utils.url_guard import UnsafeURLError, check_outbound_url

router = APIRouter(prefix="/api", tags=["endpoint-proxy"])

ALLOWED_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}
# Hop-by-hop and routing headers are never forwarded from the caller
BLOCKED_HEADERS = {"host", "content-length", "connection", "transfer-encoding", "upgrade", "proxy-authorization"}

# Injected in tests
_transport = None


def _parse_body(text: str):
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


@router.post("/test-proxy")
async def test_proxy(request: Request, payload: dict = Body(...)):
    """Forward a single test request to a public third-party endpoint.

    Lets the submission UI try an endpoint without browser CORS limits.
    Destinations inside private networks are refused.
    """
    url = str(payload.get("url") or "").strip()
    if not url:
        return JSONResponse({"error": "URL is required"}, status_code=400)

    method = str(payload.get("method") or "GET").upper()
    if method not in ALLOWED_METHODS:
        return JSONResponse({"error": f"Unsupported method: {method}"}, status_code=400)

    try:
        target = await check_outbound_url(url)
    except UnsafeURLError as ex:
        return JSONResponse({"error": f"Invalid URL: {ex}"}, status_code=400)

    allowed, msg = check_rate_limit("proxy", client_key(request))
    if not allowed:
        return JSONResponse({"error": msg}, status_code=429)

    request_url, extensions = url, {}
    headers = {"User-Agent": "API-Marketplace-Test/1.0"}
    raw_headers = payload.get("headers") or {}
    if isinstance(raw_headers, dict):
        for k, v in raw_headers.items():
            if str(k).lower() not in BLOCKED_HEADERS:
                headers[str(k)] = str(v)
    if target is not None:
        request_url, host_header, extensions = target.request_args()
        headers.update(host_header)

    content = None
    body = payload.get("body")
    if method != "GET" and body is not None and body != "":
        content = body if isinstance(body, str) else json.dumps(body)

    try:
        # Connects to the vetted address; redirects are not followed
        async with httpx.AsyncClient(timeout=PROXY_TIMEOUT_SEC, transport=_transport) as client:
            resp = await client.request(
                method, request_url, headers=headers, content=content,
                extensions=extensions, follow_redirects=False,
            )
    except Exception as ex:
        logger.warning(f"[test-proxy] {method} {url} failed: {ex}")
        return JSONResponse({
            "error": str(ex) or "Unknown error occurred",
            "status": 500,
            "statusText": "Internal Server Error",
            "data": None,
        }, status_code=502)

    return {
        "status": resp.status_code,
        "statusText": resp.reason_phrase,
        "headers": dict(resp.headers),
        "data": _parse_body(resp.text),
        "ok": resp.is_success,
    }
