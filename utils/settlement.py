"""
Checkout states and post-payment settlement.

Settlement grants the buyer's entitlement, credits the seller and records
the transaction in a single database transaction. The unique keys on
purchases and transactions make a replayed or concurrent settlement for the
same (buyer, listing) fail as a whole instead of half-applying.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import logger, PAYMENT_CURRENCY
from models.listing import Listing
from models.purchase import Purchase, Transaction
from models.user import User


class CheckoutState(str, Enum):
    NOT_STARTED = "not_started"
    INTENT_REQUESTED = "intent_requested"
    INTENT_READY = "intent_ready"
    PAYMENT_SUBMITTED = "payment_submitted"
    PROCESSOR_REDIRECT_RETURN = "processor_redirect_return"
    RECONCILED = "reconciled"
    FAILED = "failed"


class SettlementResult:
    def __init__(self, already_settled: bool, transaction: Optional[Transaction] = None):
        self.already_settled = already_settled
        self.transaction = transaction

    def to_dict(self):
        return {
            "state": CheckoutState.RECONCILED.value,
            "alreadySettled": self.already_settled,
            "transaction": self.transaction.to_dict() if self.transaction else None,
        }


def has_purchased(db: Session, buyer_uid: str, api_id: str) -> bool:
    return db.query(Purchase).filter(Purchase.buyer_uid == buyer_uid, Purchase.api_id == api_id).first() is not None


def ensure_user(db: Session, uid: str, email: Optional[str] = None) -> User:
    """Return the user row, adding a zeroed one to the session when absent (no commit)."""
    user = db.query(User).filter(User.uid == uid).first()
    if user:
        if email and not user.email:
            user.email = email
        return user
    user = User(uid=uid, email=email, earnings=0.0, credits=0.0)
    db.add(user)
    return user


def settle_purchase(
    db: Session,
    listing: Listing,
    buyer_uid: str,
    buyer_email: Optional[str],
    payment_intent_id: Optional[str],
    currency: str = PAYMENT_CURRENCY,
) -> SettlementResult:
    if has_purchased(db, buyer_uid, listing.id):
        logger.info(f"[checkout] {buyer_uid} already owns {listing.id}; nothing to settle")
        return SettlementResult(already_settled=True)

    amount = float(listing.price or 0)
    try:
        ensure_user(db, buyer_uid, buyer_email)
        db.add(Purchase(buyer_uid=buyer_uid, api_id=listing.id))

        seller_id = listing.user_id or None
        if seller_id and seller_id != buyer_uid:
            # Atomic increment, evaluated by the database
            db.query(User).filter(User.uid == seller_id).update(
                {User.earnings: User.earnings + amount}, synchronize_session=False
            )

        txn = Transaction(
            buyer_id=buyer_uid,
            buyer_email=buyer_email,
            seller_id=seller_id,
            api_id=listing.id,
            api_name=listing.name,
            amount=amount,
            currency=(currency or PAYMENT_CURRENCY).lower(),
            payment_intent_id=payment_intent_id or None,
            created_at=datetime.now(timezone.utc),
        )
        db.add(txn)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"[checkout] concurrent settlement for {buyer_uid}/{listing.id} detected; keeping the first")
        return SettlementResult(already_settled=True)
    except Exception:
        db.rollback()
        raise

    db.refresh(txn)
    logger.info(f"[checkout] settled {listing.id} for {buyer_uid} amount={amount} seller={seller_id}")
    return SettlementResult(already_settled=False, transaction=txn)
