"""HTTP-level tests for the REST API.

The app is built without running its lifespan; the in-memory services from
the shared fixtures are placed on ``app.state`` directly.
"""

from __future__ import annotations

import pytest
from conftest import BUYER, OTHER_BUYER, SELLER, sign
from fastapi.testclient import TestClient

from token_bazaar.domain.exceptions import GatewayError
from token_bazaar.main import create_app

LISTING_BODY = {
    "tokenAddress": "0x0000000000000000000000000000000000000001",
    "tokenSymbol": "USDT",
    "tokenName": "Tether USD",
    "tokenDecimals": 6,
    "tokenAmount": "500",
    "sellerAddress": SELLER,
    "askingPrice": "38000",
    "marketPrice": "42000",
}


@pytest.fixture
def client(orchestrator, marketplace) -> TestClient:
    app = create_app()
    app.state.orchestrator = orchestrator
    app.state.marketplace = marketplace
    return TestClient(app)


def _listing(client: TestClient) -> dict:
    response = client.post("/api/v1/listings", json=LISTING_BODY)
    assert response.status_code == 201
    return response.json()


def _order(client: TestClient, listing_id: str, buyer: str = BUYER) -> dict:
    response = client.post(
        "/api/v1/checkout/orders", json={"listingId": listing_id, "buyerAddress": buyer}
    )
    assert response.status_code == 200, response.text
    return response.json()


def _verify_body(order: dict, listing_id: str, signature: str | None = None) -> dict:
    return {
        "razorpay_order_id": order["orderId"],
        "razorpay_payment_id": "pay_1",
        "razorpay_signature": signature or sign(order["orderId"], "pay_1"),
        "listingId": listing_id,
        "buyerAddress": BUYER,
    }


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["store"] == "memory"
        assert body["escrow"] == "disabled"

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_lifespan_wires_services(self) -> None:
        with TestClient(create_app()) as client:
            listing = _listing(client)
            assert client.get(f"/api/v1/listings/{listing['id']}").status_code == 200


class TestListings:
    def test_create_listing_camel_case(self, client: TestClient) -> None:
        listing = _listing(client)
        assert listing["status"] == "OPEN"
        assert listing["tokenAmount"] == "500"
        assert listing["discountPercent"] == "9.5"
        assert listing["sellerAddress"] == SELLER
        assert listing["buyerAddress"] is None

    def test_invalid_body_is_400(self, client: TestClient) -> None:
        body = {**LISTING_BODY, "sellerAddress": "not-an-address"}
        response = client.post("/api/v1/listings", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_REQUEST"

    def test_browse_and_filter(self, client: TestClient) -> None:
        first = _listing(client)
        _listing(client)
        client.post(f"/api/v1/listings/{first['id']}/cancel", json={"sellerAddress": SELLER})

        assert len(client.get("/api/v1/listings").json()) == 2
        open_only = client.get("/api/v1/listings", params={"status": "OPEN"}).json()
        assert [item["status"] for item in open_only] == ["OPEN"]

    def test_unknown_listing_is_404(self, client: TestClient) -> None:
        response = client.get("/api/v1/listings/999")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_cancel_twice_is_409(self, client: TestClient) -> None:
        listing = _listing(client)
        url = f"/api/v1/listings/{listing['id']}/cancel"

        first = client.post(url, json={"sellerAddress": SELLER})
        assert first.status_code == 200
        assert first.json()["status"] == "CANCELLED"

        second = client.post(url, json={"sellerAddress": SELLER})
        assert second.status_code == 409
        assert second.json()["error"] == "INVALID_STATE"

    def test_cancel_by_non_seller_is_400(self, client: TestClient) -> None:
        listing = _listing(client)
        response = client.post(
            f"/api/v1/listings/{listing['id']}/cancel", json={"sellerAddress": BUYER}
        )
        assert response.status_code == 400


class TestCheckout:
    def test_full_purchase_flow(self, client: TestClient) -> None:
        listing = _listing(client)
        order = _order(client, listing["id"])
        assert order["amount"] == 3800000
        assert order["currency"] == "INR"
        assert order["keyId"] == "rzp_test_key"

        response = client.post("/api/v1/checkout/verify", json=_verify_body(order, listing["id"]))
        assert response.status_code == 200
        result = response.json()
        assert result["success"] is True
        assert result["releaseTxHash"] == "0xabc123"
        assert result["transactionId"] == order["transactionId"]

        sold = client.get(f"/api/v1/listings/{listing['id']}").json()
        assert sold["status"] == "SOLD"
        assert sold["buyerAddress"] == BUYER

        history = client.get("/api/v1/transactions", params={"address": BUYER}).json()
        assert [tx["status"] for tx in history] == ["RELEASED"]

        payouts = client.get("/api/v1/payouts", params={"seller": SELLER}).json()
        assert len(payouts) == 1
        assert payouts[0]["status"] == "PENDING"

        advanced = client.post(f"/api/v1/payouts/{payouts[0]['id']}/advance")
        assert advanced.json()["status"] == "PROCESSING"

    def test_replay_returns_same_outcome(self, client: TestClient) -> None:
        listing = _listing(client)
        order = _order(client, listing["id"])
        body = _verify_body(order, listing["id"])

        client.post("/api/v1/checkout/verify", json=body)
        replay = client.post("/api/v1/checkout/verify", json=body)

        assert replay.status_code == 200
        assert replay.json()["success"] is True
        assert len(client.get("/api/v1/payouts", params={"seller": SELLER}).json()) == 1

    def test_forged_signature_is_400(self, client: TestClient) -> None:
        listing = _listing(client)
        order = _order(client, listing["id"])

        response = client.post(
            "/api/v1/checkout/verify", json=_verify_body(order, listing["id"], signature="f" * 64)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_SIGNATURE"

        # The listing is free again
        _order(client, listing["id"], buyer=OTHER_BUYER)

    def test_locked_listing_is_409(self, client: TestClient) -> None:
        listing = _listing(client)
        _order(client, listing["id"])

        response = client.post(
            "/api/v1/checkout/orders",
            json={"listingId": listing["id"], "buyerAddress": OTHER_BUYER},
        )
        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    def test_gateway_failure_is_502(self, client: TestClient, gateway) -> None:
        listing = _listing(client)
        gateway.error = GatewayError("Failed to create payment order. Please try again.", 500)

        response = client.post(
            "/api/v1/checkout/orders", json={"listingId": listing["id"], "buyerAddress": BUYER}
        )
        assert response.status_code == 502
        assert response.json()["error"] == "BAD_GATEWAY"

    def test_missing_signature_is_400(self, client: TestClient) -> None:
        listing = _listing(client)
        order = _order(client, listing["id"])
        body = _verify_body(order, listing["id"])
        del body["razorpay_signature"]

        response = client.post("/api/v1/checkout/verify", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_REQUEST"

    def test_release_retry_of_unpaid_transaction_is_409(self, client: TestClient) -> None:
        listing = _listing(client)
        order = _order(client, listing["id"])

        response = client.post(f"/api/v1/transactions/{order['transactionId']}/release")
        assert response.status_code == 409
