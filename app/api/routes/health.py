from __future__ import annotations

from fastapi import APIRouter
from starlette.concurrency import run_in_threadpool

from app.core.rate_limit import get_window_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Returns a simple status response to verify the API is operational.
    Used by load balancers and monitoring systems to determine service health.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check() -> dict:
    """Readiness check including the window counter store.

    The limiter fails open, so an unreachable store does not stop traffic;
    this endpoint is where the outage becomes visible (503 via the
    StoreUnavailableError handler).
    """

    await run_in_threadpool(get_window_store().ping)
    return {"status": "ok", "rate_limit_store": "ok"}
