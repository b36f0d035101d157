"""
Identity: Firebase ID token verification.

Buyers, sellers and profile owners are identified by the uid inside a
verified Firebase ID token sent as ``Authorization: Bearer <token>``.
A missing or unverifiable token means the caller is anonymous.
"""
import json
import os
from typing import Optional, Tuple
from fastapi import Request
from core.config import logger

FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "")
FIREBASE_SERVICE_ACCOUNT_JSON = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON", "")
FIREBASE_SERVICE_ACCOUNT_JSON_PATH = (os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH", "") or "").strip().strip('"').strip("'")


def _service_account_credential(fb_credentials):
    """Inline JSON wins over a key file; None falls back to application default credentials."""
    if FIREBASE_SERVICE_ACCOUNT_JSON:
        return fb_credentials.Certificate(json.loads(FIREBASE_SERVICE_ACCOUNT_JSON))
    if FIREBASE_SERVICE_ACCOUNT_JSON_PATH and os.path.isfile(FIREBASE_SERVICE_ACCOUNT_JSON_PATH):
        os.environ.setdefault("GOOGLE_APPLICATION_CREDENTIALS", FIREBASE_SERVICE_ACCOUNT_JSON_PATH)
        return fb_credentials.Certificate(FIREBASE_SERVICE_ACCOUNT_JSON_PATH)
    return None


def _init_firebase():
    import firebase_admin
    from firebase_admin import auth as admin_auth, credentials as fb_credentials

    if not firebase_admin._apps:
        options = {"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None
        cred = _service_account_credential(fb_credentials)
        if cred is not None:
            firebase_admin.initialize_app(cred, options)
        else:
            firebase_admin.initialize_app(options=options)
    return admin_auth


firebase_enabled = False
fb_auth = None
try:
    fb_auth = _init_firebase()
    firebase_enabled = True
    logger.info("[auth] Firebase Admin initialized")
except Exception as ex:
    logger.warning(f"[auth] Firebase Admin not initialized, all requests are anonymous: {ex}")


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_identity_from_request(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Verify the Firebase ID token on the request and return (uid, email).

    Both values are None when the request is anonymous or the token does not verify.
    """
    token = _bearer_token(request)
    if not token or not firebase_enabled or fb_auth is None:
        return None, None
    try:
        claims = fb_auth.verify_id_token(token)
    except Exception as ex:
        logger.warning(f"[auth] token rejected: {ex}")
        return None, None
    email = (claims.get("email") or "").lower() or None
    return claims.get("uid"), email


def get_uid_from_request(request: Request) -> Optional[str]:
    return get_identity_from_request(request)[0]


def get_user_email_from_uid(uid: str) -> Optional[str]:
    """Look up the account email when the token carried none (receipts only)."""
    if not firebase_enabled or fb_auth is None:
        return None
    try:
        record = fb_auth.get_user(uid)
    except Exception as ex:
        logger.warning(f"[auth] email lookup failed for {uid}: {ex}")
        return None
    return (getattr(record, "email", None) or "").lower() or None
