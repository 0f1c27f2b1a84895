"""Factory for creating the configured window counter store.

Centralizes backend selection so callers never import a concrete store.
"""

from __future__ import annotations

import logging

from app.adapters.rate_limit.base import AbstractWindowStore
from app.adapters.rate_limit.in_memory import InMemoryWindowStore
from app.adapters.rate_limit.redis_store import RedisWindowStore
from app.core.config import AppSettings, settings
from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def create_window_store(app_settings: AppSettings | None = None) -> AbstractWindowStore:
    """Create a window counter store based on configuration.

    Args:
        app_settings: Optional settings; defaults to the global settings.

    Returns:
        AbstractWindowStore: Configured store instance.

    Raises:
        ValidationAppError: If the configured backend is not supported.
    """

    cfg = app_settings or settings.app
    backend = cfg.rate_limit_backend.lower()

    if backend == "memory":
        store: AbstractWindowStore = InMemoryWindowStore(
            retention_seconds=cfg.rate_limit_retention_seconds,
            lock_timeout_seconds=cfg.rate_limit_store_timeout_seconds,
        )
    elif backend == "redis":
        store = RedisWindowStore.from_url(
            cfg.rate_limit_redis_url,
            timeout_seconds=cfg.rate_limit_store_timeout_seconds,
            key_prefix=cfg.rate_limit_key_prefix,
            retention_seconds=cfg.rate_limit_retention_seconds,
        )
    else:
        raise ValidationAppError(
            code="unsupported_rate_limit_backend",
            message=f"Rate limit backend '{backend}' is not supported",
            details={"backend": backend, "available": ["memory", "redis"]},
        )

    logger.info(
        "rate_limit.store_created",
        extra={
            "backend": backend,
            "retention_s": cfg.rate_limit_retention_seconds,
            "timeout_s": cfg.rate_limit_store_timeout_seconds,
        },
    )
    return store
