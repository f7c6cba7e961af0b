import json
import logging

from app.core.logging_setup import JsonFormatter
from app.core.metrics import InMemoryRequestMetrics
from app.core.request_context import clear_request_context, set_request_context


def _record(message, *args, **extra):
    record = logging.LogRecord("app.services.points", logging.INFO, __file__, 10, message, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_request_context_and_extras():
    set_request_context(request_id="req-1", restaurant_id="1", actor_id="7")
    try:
        line = JsonFormatter().format(_record("redeemed %s points", 20, order_id=5, customer_id=10))
    finally:
        clear_request_context()

    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["module"] == "app.services.points"
    assert payload["message"] == "redeemed 20 points"
    assert payload["request_id"] == "req-1"
    assert payload["restaurant_id"] == "1"
    assert payload["actor_id"] == "7"
    assert payload["order_id"] == 5
    assert payload["customer_id"] == 10
    assert "endpoint" not in payload


def test_json_formatter_masks_tokens():
    line = JsonFormatter().format(_record("Authorization: Bearer abc.def.ghi"))

    payload = json.loads(line)
    assert "abc.def.ghi" not in payload["message"]
    assert payload["message"].endswith("***")


def test_metrics_snapshot_per_restaurant() -> None:
    metrics = InMemoryRequestMetrics()

    metrics.observe(endpoint="/api/orders/{order_id}", method="GET", status_code=200, duration_ms=10, restaurant_id="1")
    metrics.observe(endpoint="/api/orders/{order_id}", method="GET", status_code=500, duration_ms=30, restaurant_id="1")
    metrics.observe(endpoint="/api/rewards", method="GET", status_code=200, duration_ms=20)

    per_restaurant = metrics.snapshot_per_restaurant()
    assert list(per_restaurant) == ["1"]
    assert per_restaurant["1"]["total_requests"] == 2
    assert per_restaurant["1"]["error_count"] == 1
    assert per_restaurant["1"]["avg_duration_ms"] == 20.0

    snapshot = metrics.snapshot()
    assert snapshot["GET /api/rewards"]["total_requests"] == 1
