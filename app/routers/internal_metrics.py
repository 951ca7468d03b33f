from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.metrics import request_metrics
from app.deps import require_any_permission
from app.models.user import User

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def metrics(_user: User = Depends(require_any_permission("system.metrics.read"))):
    return {
        "endpoints": request_metrics.snapshot(),
        "companies": request_metrics.snapshot_per_company(),
    }
