from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.metrics import request_metrics
from app.deps import Principal, get_current_staff

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def endpoint_metrics(_staff: Principal = Depends(get_current_staff)):
    return {"endpoints": request_metrics.snapshot()}


@router.get("/restaurants")
def restaurant_metrics(_staff: Principal = Depends(get_current_staff)):
    return {"restaurants": request_metrics.snapshot_per_restaurant()}
