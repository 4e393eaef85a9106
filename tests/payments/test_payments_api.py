import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_payment_service
from main import app
from shared.codes.payment_codes import PaymentCode


@pytest.fixture
def client(service):
    app.dependency_overrides[get_payment_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _checkout_body(**overrides) -> dict:
    body = {
        "id": "order-1",
        "items": [{"product_ref": "banana", "name": "Banana prata", "unit_price": "5.99", "quantity": 2}],
        "currency": "BRL",
    }
    body.update(overrides)
    return body


def test_health_echoes_request_id(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"] == "req-123"


def test_checkout(client, payment_store):
    resp = client.post("/api/v1/payments/checkout", json=_checkout_body())
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["external_transaction_id"] == "cs_test_1"
    assert data["checkout_url"].endswith("cs_test_1")
    assert data["payment_id"] in payment_store


def test_checkout_empty_cart(client):
    resp = client.post("/api/v1/payments/checkout", json=_checkout_body(items=[]))
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == PaymentCode.EMPTY_CART
    assert body["error"]["type"] == "EmptyCart"


def test_checkout_oversized_price(client, gateway, payment_store):
    body = _checkout_body(items=[{"product_ref": "banana", "unit_price": "1e27", "quantity": 1}])
    resp = client.post("/api/v1/payments/checkout", json=body)
    assert resp.status_code == 400
    assert resp.json()["code"] == PaymentCode.INVALID_AMOUNT
    assert resp.json()["error"]["field"] == "items.0.unit_price"
    assert gateway.sessions == []
    assert payment_store == {}


def test_checkout_malformed_body(client):
    resp = client.post("/api/v1/payments/checkout", json={"items": "nope"})
    assert resp.status_code == 422


def test_webhook_without_signature(client, event_factory):
    resp = client.post("/api/v1/payments/webhooks/stripe", content=event_factory("succeeded", "cs_1"))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Webhook rejected"
    assert resp.json()["error"]["type"] == "WebhookRejected"


def test_webhook_bad_signature_looks_like_missing_one(client, event_factory):
    missing = client.post("/api/v1/payments/webhooks/stripe", content=event_factory("succeeded", "cs_1"))
    forged = client.post(
        "/api/v1/payments/webhooks/stripe",
        content=event_factory("succeeded", "cs_1"),
        headers={"Stripe-Signature": "t=1,v1=forged"},
    )
    assert forged.status_code == 400
    assert forged.json()["message"] == missing.json()["message"]
    assert forged.json()["error"]["type"] == missing.json()["error"]["type"]
    assert forged.json()["code"] == missing.json()["code"] == PaymentCode.SIGNATURE_ERROR


def test_webhook_confirms_payment(client, service, seed, payment_store, event_factory, valid_signature):
    payment = seed()
    resp = client.post(
        "/api/v1/payments/webhooks/stripe",
        content=event_factory("succeeded", payment.external_transaction_id),
        headers={"Stripe-Signature": valid_signature},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["action"] == "confirmed"
    assert payment_store[payment.id].status.value == "succeeded"
    # the route drained the recorded domain events after the commit
    assert service.clear_events() == []


def test_webhook_unhandled_event_is_acknowledged(client, event_factory, valid_signature):
    resp = client.post(
        "/api/v1/payments/webhooks/stripe",
        content=event_factory("unhandled", None, type="customer.created"),
        headers={"Stripe-Signature": valid_signature},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["action"] == "unhandled"


def test_webhook_for_unknown_payment_is_server_error(client, event_factory, valid_signature):
    resp = client.post(
        "/api/v1/payments/webhooks/stripe",
        content=event_factory("succeeded", "cs_unknown"),
        headers={"Stripe-Signature": valid_signature},
    )
    assert resp.status_code == 500
    assert resp.json()["code"] == PaymentCode.WEBHOOK_PROCESSING_FAILED
    assert resp.json()["error"]["details"] == {"event_id": "evt_1", "external_id": "cs_unknown"}


def test_refund_of_pending_payment_conflicts(client, seed):
    seed()
    resp = client.post("/api/v1/payments/refunds", json={"order_id": "order-1"})
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "IllegalTransition"


def test_partial_refund(client, service, seed):
    seed(status="succeeded", amount="100.00", payment_intent_id="pi_1")
    resp = client.post("/api/v1/payments/refunds", json={"order_id": "order-1", "partial_amount": "25.00"})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "partially_refunded"
    assert service.clear_events() == []


def test_order_payment_status(client, seed):
    payment = seed()
    resp = client.get("/api/v1/payments/orders/order-1")
    assert resp.status_code == 200
    assert resp.json()["data"]["payment_id"] == payment.id

    missing = client.get("/api/v1/payments/orders/order-404")
    assert missing.status_code == 404
    assert missing.json()["code"] == PaymentCode.PAYMENT_NOT_FOUND
