"""
Pytest configuration and fixtures for the API marketplace backend.
"""
import os
import sys

# Add project root to path for imports
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

# Configuration must be in place before core.config / core.database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("PAYMENT_CURRENCY", "inr")
os.environ["SUBMIT_LIMIT_PER_HOUR"] = "100000"
os.environ["SCRAPE_LIMIT_PER_MINUTE"] = "100000"
os.environ["PROXY_LIMIT_PER_MINUTE"] = "100000"
os.environ["PWNED_LIMIT_PER_MINUTE"] = "100000"

import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import core.auth
from core.database import Base, SessionLocal, engine, init_db
from models.listing import Listing


class FakeFirebaseAuth:
    """Stands in for firebase_admin.auth: the bearer token is the uid."""

    def verify_id_token(self, token):
        if token.startswith("bad"):
            raise ValueError("invalid token")
        return {"uid": token, "email": f"{token}@example.com"}

    def get_user(self, uid):
        return SimpleNamespace(uid=uid, email=f"{uid}@example.com")


@pytest.fixture(autouse=True)
def fake_firebase(monkeypatch):
    monkeypatch.setattr(core.auth, "fb_auth", FakeFirebaseAuth())
    monkeypatch.setattr(core.auth, "firebase_enabled", True)


@pytest.fixture(autouse=True)
def fresh_db():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from main import app
    return TestClient(app)


@pytest.fixture
def no_scrape(monkeypatch):
    """Keep detail lookups offline."""
    import routers.apis

    async def _fake_scrape(url, **kwargs):
        return {"overview": "Docs", "examples": [], "requirements": [], "isRestApi": True}

    monkeypatch.setattr(routers.apis, "scrape_docs", _fake_scrape)


def auth(uid):
    return {"Authorization": f"Bearer {uid}"}


_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)
_sequence = itertools.count()


def make_listing(db, name, **kwargs):
    fields = {
        "description": f"{name} description",
        "link": f"https://{name.lower().replace(' ', '-')}.example/docs",
        "category": "General",
        "is_paid": False,
        "price": 0.0,
        "created_at": _BASE_TIME + timedelta(seconds=next(_sequence)),
    }
    fields.update(kwargs)
    listing = Listing(name=name, **fields)
    db.add(listing)
    db.commit()
    db.refresh(listing)
    return listing
