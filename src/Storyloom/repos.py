# repos.py

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from Storyloom import models
from Storyloom.errors import ProjectCreationError, StoreWriteError
from Storyloom.metrics import inc_counter

log = structlog.get_logger()


async def create_project(
    s: AsyncSession, *, user_id: str, name: str, description: str = ""
) -> models.Project:
    obj = models.Project(
        id=uuid.uuid4().hex,
        user_id=user_id,
        name=name,
        description=description,
    )
    s.add(obj)
    try:
        await s.flush()
    except SQLAlchemyError as e:
        raise ProjectCreationError(str(e)) from e
    return obj


async def get_project(s: AsyncSession, project_id: str) -> models.Project | None:
    return await s.get(models.Project, project_id)


async def insert_entities(
    s: AsyncSession,
    model: type[models.Base],
    entities: Sequence[BaseModel],
    *,
    entity_type: str,
) -> int:
    """Add one batch of normalized entities and flush once.

    Entity fields map 1:1 onto the table columns. A rejected batch surfaces as
    ``StoreWriteError`` naming ``entity_type``.
    """
    if not entities:
        return 0
    s.add_all(model(**entity.model_dump()) for entity in entities)
    try:
        await s.flush()
    except SQLAlchemyError as e:
        inc_counter("repos.insert.error")
        log.warning("repos.insert.failed", entity_type=entity_type, count=len(entities))
        raise StoreWriteError(entity_type, str(e).splitlines()[0]) from e
    inc_counter("repos.insert.rows", len(entities))
    return len(entities)


async def insert_batch(
    session_factory: Callable[[], Any],
    model: type[models.Base],
    entities: Sequence[BaseModel],
    *,
    entity_type: str,
) -> int:
    """``insert_entities`` in a transaction of its own.

    A failure at commit time is reported the same way as one at flush time.
    """
    if not entities:
        return 0
    try:
        async with session_factory() as s:
            return await insert_entities(s, model, entities, entity_type=entity_type)
    except SQLAlchemyError as e:
        raise StoreWriteError(entity_type, str(e).splitlines()[0]) from e


async def list_rows(s: AsyncSession, model: type[models.Base], project_id: str) -> list:
    q = await s.execute(select(model).where(model.project_id == project_id))  # type: ignore[attr-defined]
    return list(q.scalars().all())


async def get_user_profile(s: AsyncSession, user_id: str) -> models.UserProfile | None:
    return await s.get(models.UserProfile, user_id)


async def upsert_user_profile(
    s: AsyncSession,
    user_id: str,
    *,
    subscription_status: str | None = None,
    trial_expires_at: datetime | None = None,
) -> models.UserProfile:
    obj = await get_user_profile(s, user_id)
    if obj is None:
        obj = models.UserProfile(user_id=user_id)
        s.add(obj)
    obj.subscription_status = subscription_status
    if trial_expires_at is not None and trial_expires_at.tzinfo is None:
        trial_expires_at = trial_expires_at.replace(tzinfo=timezone.utc)
    obj.trial_expires_at = trial_expires_at
    await s.flush()
    return obj
