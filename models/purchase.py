from sqlalchemy import Column, String, DateTime, Float, Integer, UniqueConstraint
from sqlalchemy.sql import func
from core.database import Base


class Purchase(Base):
    """
    Entitlement of a buyer to a paid listing (the buyer's purchasedAPIs set).
    One row per (buyer, listing); the unique key makes settlement at-most-once.
    """
    __tablename__ = "purchases"
    __table_args__ = (UniqueConstraint("buyer_uid", "api_id", name="uq_purchases_buyer_api"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    buyer_uid = Column(String(128), index=True, nullable=False)
    api_id = Column(String(64), index=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Transaction(Base):
    """
    Immutable receipt of one settled purchase.
    """
    __tablename__ = "transactions"
    __table_args__ = (UniqueConstraint("buyer_id", "api_id", name="uq_transactions_buyer_api"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    buyer_id = Column(String(128), index=True, nullable=False)
    buyer_email = Column(String(255), nullable=True)
    seller_id = Column(String(128), index=True, nullable=True)

    api_id = Column(String(64), index=True, nullable=False)
    api_name = Column(String(255), nullable=False)

    amount = Column(Float, nullable=False, default=0.0)  # major units, same as Listing.price
    currency = Column(String(10), nullable=False, default="inr")
    payment_intent_id = Column(String(128), unique=True, index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "buyerId": self.buyer_id,
            "buyerEmail": self.buyer_email,
            "sellerId": self.seller_id,
            "apiId": self.api_id,
            "apiName": self.api_name,
            "amount": float(self.amount or 0),
            "currency": self.currency,
            "paymentIntentId": self.payment_intent_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
