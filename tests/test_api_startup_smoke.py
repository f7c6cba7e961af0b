from fastapi.testclient import TestClient


REQUIRED_ROUTES = {
    "/api/orders",
    "/api/orders/{order_id}",
    "/api/orders/{order_id}/cancel",
    "/api/orders/{order_id}/transitions",
    "/api/orders/{order_id}/promotions/{promotion_id}",
    "/api/restaurant/orders/{order_id}/status",
    "/api/points/balance",
    "/api/points/history",
    "/api/points/redeem",
    "/api/rewards",
    "/api/rewards/{reward_type}/{reward_id}",
    "/api/rewards/{reward_type}/{reward_id}/redeem",
    "/internal/metrics",
    "/health",
}


def test_api_startup_and_router_registration(monkeypatch):
    from app import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/")
        health_response = client.get("/health", headers={"X-Request-ID": "req-123"})
        docs_response = client.get("/docs")
        openapi_response = client.get("/openapi.json")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert health_response.json() == {"status": "healthy"}
    assert health_response.headers["X-Request-ID"] == "req-123"
    assert docs_response.status_code == 200
    assert openapi_response.status_code == 200

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_request_metrics_are_recorded_per_route(monkeypatch):
    from app import main
    from app.core.metrics import request_metrics

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)
    request_metrics.reset()

    with TestClient(main.app) as client:
        client.get("/health")
        client.get("/health")

    snapshot = request_metrics.snapshot()
    assert snapshot["GET /health"]["total_requests"] == 2
    assert snapshot["GET /health"]["error_count"] == 0
