from datetime import datetime, timedelta, timezone

import pytest

from Storyloom import eligibility, repos
from Storyloom.db import session_scope
from Storyloom.eligibility import can_import


async def _profile(**fields) -> None:
    async with session_scope() as s:
        await repos.upsert_user_profile(s, "u1", **fields)


@pytest.mark.asyncio
async def test_active_subscription_can_import():
    await _profile(subscription_status="active")
    assert await can_import("u1") is True


@pytest.mark.asyncio
async def test_running_trial_can_import():
    await _profile(trial_expires_at=datetime.now(timezone.utc) + timedelta(hours=1))
    assert await can_import("u1") is True


@pytest.mark.asyncio
async def test_expired_trial_cannot_import():
    await _profile(
        subscription_status="cancelled",
        trial_expires_at=datetime.now(timezone.utc) - timedelta(days=1),
    )
    assert await can_import("u1") is False


@pytest.mark.asyncio
async def test_naive_trial_timestamp_is_treated_as_utc():
    await _profile(trial_expires_at=datetime(2030, 1, 1))
    assert await can_import("u1", now=datetime(2029, 12, 31, 23, tzinfo=timezone.utc)) is True
    assert await can_import("u1", now=datetime(2030, 1, 2, tzinfo=timezone.utc)) is False


@pytest.mark.asyncio
async def test_missing_profile_cannot_import():
    assert await can_import("nobody") is False


@pytest.mark.asyncio
async def test_lookup_failure_fails_closed(monkeypatch):
    async def _explode(*a, **k):
        raise RuntimeError("store unreachable")

    monkeypatch.setattr(eligibility.repos, "get_user_profile", _explode)
    assert await can_import("u1") is False
