"""Tests for the policy catalog."""

import dataclasses

import pytest

from app.core.errors import PolicyNotFoundError, ValidationAppError
from app.core.policies import POLICIES, IdentifierStrategy, Policy, get_policy


@pytest.mark.parametrize(
    "name, window_ms, quota, strategy",
    [
        ("auth-strict", 15 * 60 * 1000, 5, IdentifierStrategy.HYBRID),
        ("general", 60_000, 60, IdentifierStrategy.HYBRID),
        ("sensitive", 60_000, 10, IdentifierStrategy.HYBRID),
        ("public-ip", 60_000, 20, IdentifierStrategy.IP),
        ("registration", 60_000, 3, IdentifierStrategy.IP),
    ],
)
def test_catalog_values(name: str, window_ms: int, quota: int, strategy: IdentifierStrategy) -> None:
    policy = get_policy(name)

    assert policy.name == name
    assert policy.window_ms == window_ms
    assert policy.quota == quota
    assert policy.strategy is strategy
    assert policy.message


def test_unknown_policy_raises() -> None:
    with pytest.raises(PolicyNotFoundError) as exc_info:
        get_policy("nope")

    assert isinstance(exc_info.value, ValidationAppError)
    assert exc_info.value.code == "rate_limit_policy_not_found"
    assert "general" in exc_info.value.details["available"]


def test_catalog_is_read_only() -> None:
    with pytest.raises(TypeError):
        POLICIES["general"] = get_policy("sensitive")  # type: ignore[index]

    with pytest.raises(dataclasses.FrozenInstanceError):
        get_policy("general").quota = 1000  # type: ignore[misc]


@pytest.mark.parametrize("kwargs", [{"window_ms": 0, "quota": 1}, {"window_ms": 1000, "quota": 0}])
def test_invalid_policy(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        Policy(name="bad", **kwargs)


def test_strategy_values_match_header_vocabulary() -> None:
    assert [s.value for s in IdentifierStrategy] == ["ip", "token", "hybrid"]
