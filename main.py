from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from core.config import logger, APP_NAME, ALLOWED_ORIGINS, ALLOWED_ORIGINS_REGEX  # type: ignore
from core.database import init_db  # type: ignore

# Routers
from routers import apis, submit, checkout, scrape, endpoint_proxy, haveibeenpwned, user  # type: ignore

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-Frame-Options": "DENY",
}

app = FastAPI(title=APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_origin_regex=ALLOWED_ORIGINS_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


for module in (apis, submit, checkout, scrape, endpoint_proxy, haveibeenpwned, user):
    app.include_router(module.router)


@app.on_event("startup")
async def create_schema():
    try:
        init_db()
        logger.info(f"{APP_NAME} schema ready")
    except Exception as ex:
        # Keep serving; catalog endpoints will report the store error per request
        logger.error(f"init_db failed: {ex}")


@app.get("/")
async def root():
    return {"message": f"{APP_NAME} backend ready"}


@app.get("/health")
async def health():
    return {"status": "ok"}
