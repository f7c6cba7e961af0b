from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.metrics import request_metrics
from app.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        method = request.method

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            endpoint = _route_path(request)
            restaurant_id = _extract_restaurant_id(request)
            actor_id = _extract_actor_id(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)

            set_request_context(restaurant_id=restaurant_id, actor_id=actor_id)
            request_metrics.observe(
                endpoint=endpoint,
                method=method,
                status_code=status_code,
                duration_ms=duration_ms,
                restaurant_id=restaurant_id,
            )

            logger.info(
                "request completed",
                extra={
                    "request_id": request_id,
                    "restaurant_id": restaurant_id,
                    "actor_id": actor_id,
                    "endpoint": endpoint,
                    "method": method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )

            if "response" in locals():
                response.headers["X-Request-ID"] = request_id

            clear_request_context()


def _route_path(request: Request) -> str:
    # usa o template da rota (/api/orders/{order_id}) para não explodir a cardinalidade
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _extract_restaurant_id(request: Request) -> str | None:
    principal = getattr(request.state, "principal", None)
    restaurant_id = getattr(principal, "restaurant_id", None)
    if restaurant_id is not None:
        return str(restaurant_id)
    header_restaurant = request.headers.get("X-Restaurant-ID")
    if header_restaurant:
        return header_restaurant
    return None


def _extract_actor_id(request: Request) -> str | None:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        return None
    actor_id = getattr(principal, "id", None)
    return str(actor_id) if actor_id is not None else None
