"""
Marketplace account, keyed by Firebase uid.
Created on first sign-in or first purchase; sellers accrue earnings here.
"""
from sqlalchemy import Column, String, Text, DateTime, Float
from sqlalchemy.sql import func
from core.database import Base


class User(Base):
    __tablename__ = "users"

    uid = Column(String(128), primary_key=True)
    email = Column(String(255), index=True, nullable=True)
    display_name = Column(String(255), nullable=True)
    github_link = Column(Text, nullable=True)

    # Same unit convention as Listing.price
    earnings = Column(Float, nullable=False, default=0.0)
    credits = Column(Float, nullable=False, default=0.0)  # stored, not consumed by any flow

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def to_dict(self, purchased_ids=None):
        return {
            "uid": self.uid,
            "email": self.email,
            "displayName": self.display_name,
            "githubLink": self.github_link,
            "earnings": float(self.earnings or 0),
            "credits": float(self.credits or 0),
            "purchasedAPIs": list(purchased_ids or []),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
