"""
Tests for checkout sessions, payment reconciliation and settlement.
"""
import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

import routers.checkout
import utils.stripe_payments
from conftest import auth, make_listing
from models.purchase import Purchase, Transaction
from models.user import User
from utils.settlement import settle_purchase
from utils.stripe_payments import (
    PaymentConfigError,
    PaymentProcessorError,
    create_payment_intent,
    retrieve_payment_intent,
    to_minor_units,
)


@pytest.fixture
def paid(db):
    db.add(User(uid="seller", email="seller@example.com", earnings=10.0, credits=0.0))
    db.commit()
    return make_listing(
        db, "Geo Pro", is_paid=True, price=75.0, user_id="seller", endpoint="https://geo.example/v2",
    )


@pytest.fixture
def processor(monkeypatch):
    """Fake payment processor keyed by intent id."""
    intents = {}
    created = []

    async def _create(amount, api_id, currency="inr", transport=None):
        intent_id = f"pi_{len(created) + 1}"
        created.append({"amount": amount, "apiId": api_id})
        intents[intent_id] = {
            "id": intent_id, "amount": amount, "currency": currency,
            "status": "requires_payment_method", "metadata": {"apiId": api_id},
        }
        return {"clientSecret": f"{intent_id}_secret", "paymentIntentId": intent_id, "amount": amount, "currency": currency}

    async def _retrieve(intent_id, transport=None):
        if intent_id not in intents:
            raise PaymentProcessorError("No such payment_intent", status_code=400)
        return intents[intent_id]

    monkeypatch.setattr(routers.checkout, "create_payment_intent", _create)
    monkeypatch.setattr(routers.checkout, "retrieve_payment_intent", _retrieve)
    return {"intents": intents, "created": created}


def _open_and_pay(client, processor, api_id, uid="buyer"):
    resp = client.post("/api/checkout/session", json={"apiId": api_id}, headers=auth(uid))
    intent_id = resp.json()["paymentIntentId"]
    processor["intents"][intent_id]["status"] = "succeeded"
    return intent_id


class TestCreatePaymentIntent:
    def test_missing_fields(self, client, processor):
        resp = client.post("/api/create-payment-intent", json={"apiId": "x"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing apiId or amount"

    def test_below_processor_minimum(self, client, processor):
        resp = client.post("/api/create-payment-intent", json={"apiId": "x", "amount": 4999})
        assert resp.status_code == 400
        assert "at least 50.00 INR" in resp.json()["error"]
        assert processor["created"] == []

    @pytest.mark.parametrize("amount", ["nan", "inf", "-inf", "1e999"])
    def test_non_finite_amount(self, client, processor, amount):
        resp = client.post("/api/create-payment-intent", json={"apiId": "x", "amount": amount})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Amount must be a number"
        assert processor["created"] == []

    def test_success(self, client, processor):
        resp = client.post("/api/create-payment-intent", json={"apiId": "x", "amount": 5000})
        assert resp.status_code == 200
        assert resp.json() == {"clientSecret": "pi_1_secret", "paymentIntentId": "pi_1"}


class TestCheckoutSession:
    def test_requires_sign_in(self, client, paid, processor):
        resp = client.post("/api/checkout/session", json={"apiId": paid.id})
        assert resp.status_code == 401
        assert resp.json()["state"] == "failed"

    def test_unknown_listing(self, client, processor):
        resp = client.post("/api/checkout/session", json={"apiId": "missing"}, headers=auth("buyer"))
        assert resp.status_code == 404

    def test_free_listing(self, client, db, processor):
        free = make_listing(db, "Free")
        resp = client.post("/api/checkout/session", json={"apiId": free.id}, headers=auth("buyer"))
        assert resp.status_code == 400
        assert resp.json()["error"] == "This API is free"

    def test_prices_server_side(self, client, paid, processor):
        resp = client.post("/api/checkout/session", json={"apiId": paid.id, "amount": 1}, headers=auth("buyer"))
        assert resp.status_code == 200
        data = resp.json()
        assert data["state"] == "intent_ready"
        assert data["amount"] == 7500
        assert data["currency"] == "inr"
        assert "endpoint" not in data["api"]
        assert processor["created"] == [{"amount": 7500, "apiId": paid.id}]

    def test_owner_already_entitled(self, client, paid, processor):
        resp = client.post("/api/checkout/session", json={"apiId": paid.id}, headers=auth("seller"))
        data = resp.json()
        assert data["state"] == "reconciled"
        assert data["alreadyOwned"] is True
        assert processor["created"] == []


class TestCheckoutComplete:
    def test_settles_once(self, client, db, paid, processor):
        intent_id = _open_and_pay(client, processor, paid.id)

        first = client.post("/api/checkout/complete", json={"apiId": paid.id, "paymentIntentId": intent_id}, headers=auth("buyer"))
        assert first.status_code == 200
        body = first.json()
        assert body["state"] == "reconciled"
        assert body["alreadySettled"] is False
        assert body["transaction"]["amount"] == 75.0
        assert body["transaction"]["sellerId"] == "seller"
        assert body["transaction"]["buyerEmail"] == "buyer@example.com"
        assert body["api"]["endpoint"] == "https://geo.example/v2"

        second = client.post("/api/checkout/complete", json={"apiId": paid.id, "paymentIntentId": intent_id}, headers=auth("buyer"))
        assert second.status_code == 200
        assert second.json()["alreadySettled"] is True

        db.expire_all()
        assert db.query(Transaction).count() == 1
        assert db.query(Purchase).filter(Purchase.buyer_uid == "buyer").count() == 1
        assert db.query(User).filter(User.uid == "seller").first().earnings == 85.0
        buyer = db.query(User).filter(User.uid == "buyer").first()
        assert buyer.earnings == 0.0

    def test_purchase_unlocks_endpoint(self, client, paid, processor):
        intent_id = _open_and_pay(client, processor, paid.id)
        client.post("/api/checkout/complete", json={"apiId": paid.id, "paymentIntentId": intent_id}, headers=auth("buyer"))

        data = client.get(f"/api/apis/{paid.id}", params={"scrape": "false"}, headers=auth("buyer")).json()
        assert data["access"]["state"] == "granted"
        assert data["api"]["endpoint"] == "https://geo.example/v2"

    def test_unpaid_intent(self, client, db, paid, processor):
        resp = client.post("/api/checkout/session", json={"apiId": paid.id}, headers=auth("buyer"))
        intent_id = resp.json()["paymentIntentId"]

        resp = client.post("/api/checkout/complete", json={"apiId": paid.id, "paymentIntentId": intent_id}, headers=auth("buyer"))
        assert resp.status_code == 402
        assert resp.json()["state"] == "failed"
        assert db.query(Purchase).count() == 0

    def test_intent_for_other_listing(self, client, db, paid, processor):
        other = make_listing(db, "Other Pro", is_paid=True, price=60.0, user_id="seller")
        intent_id = _open_and_pay(client, processor, other.id)

        resp = client.post("/api/checkout/complete", json={"apiId": paid.id, "paymentIntentId": intent_id}, headers=auth("buyer"))
        assert resp.status_code == 400
        assert db.query(Transaction).count() == 0

    def test_underpaid_intent(self, client, db, paid, processor):
        intent_id = _open_and_pay(client, processor, paid.id)
        processor["intents"][intent_id]["amount"] = 5000

        resp = client.post("/api/checkout/complete", json={"apiId": paid.id, "paymentIntentId": intent_id}, headers=auth("buyer"))
        assert resp.status_code == 400
        assert db.query(Transaction).count() == 0

    def test_requires_sign_in(self, client, paid, processor):
        resp = client.post("/api/checkout/complete", json={"apiId": paid.id, "paymentIntentId": "pi_1"})
        assert resp.status_code == 401


class TestSettlePurchase:
    def test_conflicting_receipt_rolls_back_everything(self, db, paid):
        # A receipt already written by a concurrent settlement for the same pair
        db.add(Transaction(buyer_id="buyer", seller_id="seller", api_id=paid.id, api_name=paid.name, amount=75.0, currency="inr"))
        db.commit()

        result = settle_purchase(db, paid, buyer_uid="buyer", buyer_email=None, payment_intent_id="pi_race")

        assert result.already_settled is True
        assert db.query(Purchase).count() == 0
        assert db.query(User).filter(User.uid == "seller").first().earnings == 10.0
        assert db.query(Transaction).count() == 1

    def test_missing_seller_row(self, db):
        listing = make_listing(db, "Orphan", is_paid=True, price=50.0, user_id="ghost")
        result = settle_purchase(db, listing, buyer_uid="buyer", buyer_email="b@example.com", payment_intent_id="pi_x")

        assert result.already_settled is False
        assert result.transaction.seller_id == "ghost"
        assert db.query(User).filter(User.uid == "ghost").first() is None


class TestStripeClient:
    def test_minor_units(self):
        assert to_minor_units(50) == 5000
        assert to_minor_units(19.99) == 1999

    def test_create_intent_form(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"id": "pi_9", "client_secret": "pi_9_secret", "amount": 7500, "currency": "inr"})

        intent = asyncio.run(create_payment_intent(7500, "api-1", transport=httpx.MockTransport(handler)))

        assert intent == {"clientSecret": "pi_9_secret", "paymentIntentId": "pi_9", "amount": 7500, "currency": "inr"}
        assert seen["auth"] == "Bearer sk_test_dummy"
        assert seen["form"]["metadata[apiId]"] == ["api-1"]
        assert seen["form"]["amount"] == ["7500"]

    def test_processor_error_message(self):
        def handler(request):
            return httpx.Response(402, json={"error": {"message": "Your card was declined."}})

        with pytest.raises(PaymentProcessorError) as exc:
            asyncio.run(retrieve_payment_intent("pi_1", transport=httpx.MockTransport(handler)))
        assert exc.value.message == "Your card was declined."
        assert exc.value.status_code == 400

    def test_missing_secret_key(self, monkeypatch):
        monkeypatch.setattr(utils.stripe_payments, "STRIPE_SECRET_KEY", "")
        with pytest.raises(PaymentConfigError):
            asyncio.run(create_payment_intent(5000, "api-1"))
