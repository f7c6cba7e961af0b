import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import app.services.event_handlers  # noqa: F401
from app.core.database import get_db
from app.models.customer import Customer
from app.models.order import Order
from app.models.promotion import Promotion, PromotionItem
from app.routers.orders import router as orders_router
from app.routers.points import router as points_router
from app.routers.rewards import router as rewards_router
from app.services import broadcasting, outbox
from app.services.auth import create_access_token
from app.services.broadcasting import InMemoryBroadcaster
from app.services.points import earn
from tests.fixtures_data import (
    HAPPY_PATH_ORDER_ITEMS,
    OTHER_RESTAURANT_ID,
    RESTAURANT_ID,
    add_customer,
    add_order,
    build_session,
    seed_catalog,
)


def _customer_headers(customer_id=10):
    return {"Authorization": f"Bearer {create_access_token(customer_id, role='customer')}"}


def _staff_headers(restaurant_id=RESTAURANT_ID):
    token = create_access_token(7, role="staff", restaurant_id=restaurant_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def env(monkeypatch):
    db = build_session()
    seed_catalog(db)
    add_customer(db)

    broadcaster = InMemoryBroadcaster()
    monkeypatch.setattr(broadcasting, "_broadcaster", broadcaster)
    monkeypatch.setattr(outbox, "dispatch_in_new_session", lambda ids: outbox.dispatch_events(db, ids))

    app = FastAPI()
    app.include_router(orders_router)
    app.include_router(points_router)
    app.include_router(rewards_router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app), db, broadcaster


def test_customer_places_order_with_options(env):
    client, db, _ = env

    response = client.post(
        "/api/orders",
        json={"restaurant_id": RESTAURANT_ID, "service_type": "delivery", "items": HAPPY_PATH_ORDER_ITEMS},
        headers=_customer_headers(),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["service_type"] == "delivery"
    # (3000 + 150) * 2 + 800
    assert body["subtotal_cents"] == 7100
    assert body["total_cents"] == 7100
    assert body["items"][0]["selected_options"] == [
        {"section": "Pão", "option": "Integral", "price_modifier_cents": 150}
    ]


def test_order_from_other_restaurant_catalog_is_rejected(env):
    client, _, _ = env

    response = client.post(
        "/api/orders",
        json={"restaurant_id": RESTAURANT_ID, "items": [{"product_id": 501, "quantity": 1}]},
        headers=_customer_headers(),
    )

    assert response.status_code == 404


def test_staff_updates_status_and_event_is_broadcast(env):
    client, db, broadcaster = env
    order = add_order(db)

    response = client.patch(
        f"/api/restaurant/orders/{order.id}/status",
        json={"status": "preparing", "note": "Na chapa"},
        headers=_staff_headers(),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["previous_status"] == "pending"
    assert body["new_status"] == "preparing"
    assert broadcaster.channels_for("order.status.updated") == ["customer.10.orders", "restaurant.1.orders"]


def test_invalid_transition_returns_409(env):
    client, db, _ = env
    order = add_order(db)

    response = client.patch(
        f"/api/restaurant/orders/{order.id}/status",
        json={"status": "completed"},
        headers=_staff_headers(),
    )

    assert response.status_code == 409
    db.refresh(order)
    assert order.status == Order.STATUS_PENDING


def test_staff_of_other_restaurant_cannot_see_order(env):
    client, db, _ = env
    order = add_order(db)

    response = client.patch(
        f"/api/restaurant/orders/{order.id}/status",
        json={"status": "preparing"},
        headers=_staff_headers(OTHER_RESTAURANT_ID),
    )

    assert response.status_code == 404


def test_customer_cannot_use_restaurant_status_endpoint(env):
    client, db, _ = env
    order = add_order(db)

    response = client.patch(
        f"/api/restaurant/orders/{order.id}/status",
        json={"status": "preparing"},
        headers=_customer_headers(),
    )

    assert response.status_code == 403


def test_missing_or_invalid_token_is_rejected(env):
    client, db, _ = env
    order = add_order(db)

    assert client.get(f"/api/orders/{order.id}").status_code == 401
    assert client.get(f"/api/orders/{order.id}", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_customer_reads_order_and_transitions(env):
    client, db, _ = env
    order = add_order(db, service_type=Order.SERVICE_DELIVERY, status=Order.STATUS_READY)
    other = add_customer(db, customer_id=11)

    response = client.get(f"/api/orders/{order.id}/transitions", headers=_customer_headers())
    forbidden = client.get(f"/api/orders/{order.id}", headers=_customer_headers(other.id))

    assert response.status_code == 200
    assert response.json()["allowed"] == ["cancelled", "out_for_delivery"]
    assert response.json()["is_terminal"] is False
    assert forbidden.status_code == 404


def test_customer_cancels_pending_order(env):
    client, db, broadcaster = env
    order = add_order(db)

    response = client.post(f"/api/orders/{order.id}/cancel", json={"reason": "Pedi errado"}, headers=_customer_headers())

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "Pedi errado"
    assert len(broadcaster.published) == 2


def test_customer_cannot_cancel_order_in_preparation(env):
    client, db, _ = env
    order = add_order(db, status=Order.STATUS_PREPARING)

    response = client.post(f"/api/orders/{order.id}/cancel", json={"reason": "Desisti"}, headers=_customer_headers())

    assert response.status_code == 409


def test_apply_promotion_endpoint_is_idempotent(env):
    client, db, _ = env
    order = add_order(
        db,
        items=[{"variant_id": 201, "product_id": 101, "category_id": 1, "name": "Sub", "quantity": 2, "unit_price_cents": 3000}],
    )
    db.add(
        Promotion(
            id=1,
            restaurant_id=RESTAURANT_ID,
            name="2x1",
            type=Promotion.TYPE_TWO_FOR_ONE,
            is_active=True,
            items=[PromotionItem(product_id=101)],
        )
    )
    db.commit()

    first = client.post(f"/api/orders/{order.id}/promotions/1", headers=_customer_headers())
    second = client.post(f"/api/orders/{order.id}/promotions/1", headers=_customer_headers())

    assert first.status_code == 200
    assert first.json()["amount_cents"] == 3000
    assert second.json()["amount_cents"] == 0
    db.refresh(order)
    assert order.total_cents == 3000


def test_points_balance_history_and_redeem(env):
    client, db, _ = env
    customer = add_customer(db, customer_id=12)
    order = add_order(db, customer_id=customer.id)
    earn(db, customer, 50)

    balance = client.get("/api/points/balance", headers=_customer_headers(12))
    too_much = client.post(
        "/api/points/redeem",
        json={"order_id": order.id, "points_to_redeem": 60},
        headers=_customer_headers(12),
    )
    ok = client.post(
        "/api/points/redeem",
        json={"order_id": order.id, "points_to_redeem": 20},
        headers=_customer_headers(12),
    )
    history = client.get("/api/points/history?page=1&per_page=10", headers=_customer_headers(12))

    assert balance.json()["balance"] == 50
    assert too_much.status_code == 422
    assert too_much.json()["detail"] == "Pontos insuficientes para o resgate"
    assert ok.status_code == 200
    assert ok.json()["balance"] == 30
    assert ok.json()["credit_cents"] == 200
    assert ok.json()["order_total_cents"] == 2800
    assert history.json()["total"] == 2
    assert [item["type"] for item in history.json()["items"]] == ["redeem", "earn"]


def test_redeem_validates_points_amount(env):
    client, db, _ = env
    order = add_order(db)

    response = client.post(
        "/api/points/redeem",
        json={"order_id": order.id, "points_to_redeem": 0},
        headers=_customer_headers(),
    )

    assert response.status_code == 422


def test_rewards_catalog_endpoints(env):
    client, db, _ = env
    earn(db, db.get(Customer, 10), 100)

    catalog = client.get("/api/rewards")
    product = client.get("/api/rewards/product/101")
    missing = client.get("/api/rewards/product/999")
    redeemed = client.post("/api/rewards/product/102/redeem", headers=_customer_headers())

    assert catalog.status_code == 200
    assert [item["id"] for item in catalog.json()] == [103, 102, 201, 301, 202]
    assert product.json()["points_cost"] is None
    assert [v["id"] for v in product.json()["variants"]] == [201, 202]
    assert missing.status_code == 404
    assert redeemed.status_code == 200
    assert redeemed.json()["balance"] == 60
