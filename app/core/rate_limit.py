"""Rate limiting dependency and middleware for FastAPI routes.

This module wires the admission engine into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on ``rate_limit("<policy>")`` only.
- Swap-friendly: the window store (memory/Redis) is chosen by settings.
- Fail-open: store failures never block traffic.

Contract:
- Admitted requests get X-RateLimit-Limit/Remaining/Reset/Type headers.
- Throttled requests raise RateLimitExceeded, rendered as HTTP 429 by the
  handler registered in ``exception_handlers``.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool

from app.adapters.rate_limit.base import AbstractWindowStore
from app.adapters.rate_limit.factory import create_window_store
from app.core.auth import get_current_user
from app.core.config import settings
from app.core.policies import Policy, get_policy
from app.services.admission import Admit, AdmissionEngine, Reject
from app.services.identity import ResolvedIdentity, resolve_identifier
from app.services.usage import UsageService
from app.utils.timestamps import to_iso8601

_store: AbstractWindowStore | None = None
_store_config: tuple | None = None
_store_pinned = False
_engine: AdmissionEngine | None = None
_usage_service: UsageService | None = None


class RateLimitExceeded(Exception):
    """Raised by the route dependency to short-circuit with HTTP 429."""

    def __init__(self, decision: Reject) -> None:
        super().__init__(decision.message)
        self.decision = decision


def _current_store_config() -> tuple:
    cfg = settings.app
    return (
        cfg.rate_limit_backend,
        cfg.rate_limit_redis_url,
        cfg.rate_limit_key_prefix,
        cfg.rate_limit_store_timeout_seconds,
        cfg.rate_limit_retention_seconds,
    )


def get_window_store() -> AbstractWindowStore:
    """Return the process-wide window store.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the store is rebuilt
    unless one was installed explicitly via ``use_window_store``.
    """

    global _store, _store_config, _engine, _usage_service

    config = _current_store_config()
    if _store is None or (not _store_pinned and _store_config != config):
        _store = create_window_store(settings.app)
        _store_config = config
        _engine = None
        _usage_service = None

    return _store


def use_window_store(store: AbstractWindowStore | None) -> None:
    """Install a specific store (tests, embedding); None restores settings-driven."""

    global _store, _store_config, _store_pinned, _engine, _usage_service

    _store = store
    _store_config = _current_store_config() if store is not None else None
    _store_pinned = store is not None
    _engine = None
    _usage_service = None


def get_admission_engine() -> AdmissionEngine:
    global _engine

    store = get_window_store()
    if _engine is None or _engine.store is not store:
        _engine = AdmissionEngine(store)
    return _engine


def get_usage_service() -> UsageService:
    global _usage_service

    store = get_window_store()
    if _usage_service is None or _usage_service.store is not store:
        _usage_service = UsageService(store)
    return _usage_service


def client_host(request: Request) -> str | None:
    return request.client.host if request.client else None


def build_rate_limit_headers(decision: Admit | Reject) -> dict[str, str]:
    """X-RateLimit-* headers for a counted decision (empty when not counted)."""

    if decision.limit is None or decision.reset_at is None:
        return {}
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": to_iso8601(decision.reset_at),
        "X-RateLimit-Type": str(decision.strategy_used),
    }


def _record_charge(request: Request, identity: ResolvedIdentity, policy: Policy) -> None:
    charges = getattr(request.state, "rate_limit_charges", None)
    if charges is None:
        charges = []
        request.state.rate_limit_charges = charges
    charges.append((identity, policy))


def rate_limit(policy: str | Policy) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing a policy.

    ``policy`` is a catalog name or a Policy instance. Unknown names fail at
    import time (PolicyNotFoundError).

    Usage:
        @router.get("/users", dependencies=[Depends(authenticate), Depends(rate_limit("general"))])
    """

    if isinstance(policy, str):
        policy = get_policy(policy)

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        if not settings.app.rate_limit_enabled:
            return

        identity = resolve_identifier(
            get_current_user(request),
            client_host(request),
            policy.strategy,
        )
        engine = get_admission_engine()
        decision = await run_in_threadpool(engine.decide, identity, policy)

        if isinstance(decision, Reject):
            raise RateLimitExceeded(decision)

        if not decision.counted or identity is None:
            return

        if settings.app.rate_limit_include_headers:
            response.headers.update(build_rate_limit_headers(decision))

        if policy.skip_successful_requests or policy.skip_failed_requests:
            _record_charge(request, identity, policy)

    enforce_rate_limit.__name__ = f"enforce_rate_limit_{policy.name.replace('-', '_')}"
    return enforce_rate_limit


async def rate_limit_compensation_middleware(request: Request, call_next) -> Response:
    """HTTP middleware returning slots for outcomes a policy does not count.

    Runs after the handler so the response status is known; every charge a
    ``rate_limit`` dependency recorded on ``request.state`` is offered back to
    the engine.

    Usage:
        app.middleware("http")(rate_limit_compensation_middleware)
    """

    response: Response = await call_next(request)

    charges = getattr(request.state, "rate_limit_charges", None)
    if charges:
        engine = get_admission_engine()
        for identity, policy in charges:
            await run_in_threadpool(engine.compensate, identity, policy, response.status_code)

    return response
