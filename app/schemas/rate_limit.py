"""Pydantic schemas for the rate limit contract and introspection endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from app.adapters.rate_limit.base import UsageSummary, UsageWindow
from app.services.admission import Reject
from app.services.usage import GlobalStats, UsageReport
from app.utils.timestamps import to_iso8601

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RateLimitExceededResponse(CamelModel):
    """Body returned with HTTP 429."""

    success: Literal[False] = False
    message: str = Field(..., description="Policy-specific message for the caller.")
    error: Literal["RATE_LIMIT_EXCEEDED"] = "RATE_LIMIT_EXCEEDED"
    retry_after: int = Field(..., description="Seconds until the window resets.")
    limit: int = Field(..., description="Requests allowed per window.")
    remaining: int = Field(0, description="Always 0 when throttled.")
    reset_time: datetime = Field(..., description="When the current window resets (UTC).")
    type: Literal["ip", "token"] = Field(..., description="Kind of identifier billed.")

    @field_serializer("reset_time")
    def _serialize_reset_time(self, value: datetime) -> str:
        return to_iso8601(value)

    @classmethod
    def from_decision(cls, decision: Reject) -> "RateLimitExceededResponse":
        return cls(
            message=decision.message,
            retry_after=decision.retry_after_seconds,
            limit=decision.limit,
            remaining=decision.remaining,
            reset_time=decision.reset_at_datetime,
            type=decision.strategy_used,
        )


class UsageData(CamelModel):
    current_usage: int = Field(..., description="Requests counted in the current window.")
    limit: int
    remaining: int
    reset_time: datetime
    window_ms: int
    last_request: datetime | None = None

    @field_serializer("reset_time", "last_request")
    def _serialize_timestamps(self, value: datetime | None) -> str | None:
        return to_iso8601(value) if value is not None else None

    @classmethod
    def from_report(cls, report: UsageReport) -> "UsageData":
        return cls(
            current_usage=report.current_usage,
            limit=report.limit,
            remaining=report.remaining,
            reset_time=report.reset_time,
            window_ms=report.window_ms,
            last_request=report.last_request,
        )


class SummaryData(CamelModel):
    total_users: int = Field(..., description="Identifiers with a live usage window.")
    total_requests: int
    avg_requests_per_user: float

    @classmethod
    def from_summary(cls, summary: UsageSummary) -> "SummaryData":
        return cls(
            total_users=summary.total_identifiers,
            total_requests=summary.total_requests,
            avg_requests_per_user=round(summary.average_requests_per_identifier, 2),
        )


class ActivityItem(CamelModel):
    identifier: str
    count: int
    last_request: datetime

    @field_serializer("last_request")
    def _serialize_last_request(self, value: datetime) -> str:
        return to_iso8601(value)

    @classmethod
    def from_window(cls, window: UsageWindow) -> "ActivityItem":
        return cls(
            identifier=window.identifier,
            count=window.count,
            last_request=datetime.fromtimestamp(window.last_request, tz=timezone.utc),
        )


class GlobalStatsData(CamelModel):
    summary: SummaryData
    recent_activity: list[ActivityItem]

    @classmethod
    def from_stats(cls, stats: GlobalStats) -> "GlobalStatsData":
        return cls(
            summary=SummaryData.from_summary(stats.summary),
            recent_activity=[ActivityItem.from_window(w) for w in stats.recent_activity],
        )


class Envelope(CamelModel, Generic[DataT]):
    """Standard ``{"success": ..., "data": ...}`` wrapper."""

    success: bool = True
    data: DataT
