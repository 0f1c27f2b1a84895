from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from app.core.auth import AuthenticatedUser, authenticate, require_admin, require_user
from app.core.policies import get_policy
from app.core.rate_limit import get_usage_service, rate_limit
from app.schemas.rate_limit import Envelope, GlobalStatsData, UsageData

router = APIRouter(prefix="/rate-limit", tags=["Rate Limit"])


@router.get(
    "/usage",
    response_model=Envelope[UsageData],
    dependencies=[Depends(authenticate), Depends(rate_limit("sensitive"))],
)
async def get_my_usage(
    user: AuthenticatedUser = Depends(require_user),
    policy_name: str = Query("general", alias="policy", description="Policy to report against."),
) -> Envelope[UsageData]:
    """Current usage of the authenticated caller.

    Reports the caller's window under ``policy`` (default ``general``).
    Unknown policy names return 400.
    """
    policy = get_policy(policy_name)
    report = await run_in_threadpool(get_usage_service().get_usage, user.id, policy)
    return Envelope[UsageData](data=UsageData.from_report(report))


@router.get(
    "/stats",
    response_model=Envelope[GlobalStatsData],
    dependencies=[Depends(authenticate), Depends(rate_limit("sensitive"))],
)
async def get_global_stats(
    _: AuthenticatedUser = Depends(require_admin),
    limit: int = Query(10, ge=1, le=100, description="Number of recent identifiers to list."),
) -> Envelope[GlobalStatsData]:
    """Usage summary across all identifiers (admins only)."""
    stats = await run_in_threadpool(get_usage_service().get_global_stats, limit)
    return Envelope[GlobalStatsData](data=GlobalStatsData.from_stats(stats))
