"""
API listing model
Replaces the document-store 'apis' collection and the apis.json flat file
"""
import uuid
from sqlalchemy import Column, String, Text, DateTime, Boolean, Float
from sqlalchemy.sql import func
from core.database import Base


def _new_listing_id() -> str:
    return uuid.uuid4().hex


class Listing(Base):
    __tablename__ = "apis"

    id = Column(String(64), primary_key=True, default=_new_listing_id)

    # Display; name and link are each unique across the catalog
    name = Column(String(255), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False, default="General", index=True)
    link = Column(String(2048), unique=True, index=True, nullable=False)

    # Capability flags
    auth = Column(String(32), nullable=False, default="")  # "", none, apiKey, oauth, basic, bearer
    https = Column(Boolean, nullable=False, default=True)
    cors = Column(String(16), nullable=False, default="unknown")  # yes, no, unknown

    # Commerce; price is in major currency units
    is_paid = Column(Boolean, nullable=False, default=False)
    price = Column(Float, nullable=False, default=0.0)
    endpoint = Column(String(2048), nullable=True)

    # Seller uid; anonymous submissions allowed
    user_id = Column(String(128), index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def slug(self) -> str:
        return "-".join((self.name or "").lower().split())

    def to_dict(self, include_endpoint: bool = False):
        """Serialize in the catalog wire format. The real endpoint is only
        included for entitled viewers."""
        created = self.created_at.isoformat() if self.created_at else None
        data = {
            "id": self.id,
            "API": self.name,
            "Description": self.description,
            "Auth": self.auth or "",
            "HTTPS": bool(self.https),
            "Cors": self.cors or "unknown",
            "Link": self.link,
            "Category": self.category or "General",
            "isPaid": bool(self.is_paid),
            "price": float(self.price or 0),
            "userId": self.user_id,
            "slug": self.slug(),
            "submittedAt": created,
            "createdAt": created,
        }
        if include_endpoint:
            data["endpoint"] = self.endpoint or self.link
        return data
