# eligibility.py

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from Storyloom import repos
from Storyloom.db import session_scope

log = structlog.get_logger()


def _as_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


async def can_import(user_id: str, *, now: datetime | None = None) -> bool:
    """True when the user has an active subscription or an unexpired trial.

    Fails closed: a missing profile or any lookup error means no.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    try:
        async with session_scope() as s:
            profile = await repos.get_user_profile(s, user_id)
    except Exception as e:
        log.warning("eligibility.lookup_failed", user_id=user_id, error=str(e))
        return False

    if profile is None:
        log.info("eligibility.no_profile", user_id=user_id)
        return False
    if profile.subscription_status == "active":
        return True
    if profile.trial_expires_at is not None and _as_utc(profile.trial_expires_at) > now:
        return True
    log.info("eligibility.denied", user_id=user_id, status=profile.subscription_status)
    return False
