# outline.py

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

import structlog

from Storyloom import models, repos
from Storyloom.errors import ImporterError
from Storyloom.mapper import book_name, chapter_notes, chapter_number, stable_id
from Storyloom.schemas import OutlineNodeEntity, SourceRecord

log = structlog.get_logger()


def group_by_book(
    records: Sequence[SourceRecord], default_book: str = "Imported Story"
) -> dict[str, list[SourceRecord]]:
    """Chapter records keyed by book, in first-seen book order."""
    groups: dict[str, list[SourceRecord]] = {}
    for record in records:
        groups.setdefault(book_name(record, default_book), []).append(record)
    return groups


def act_id(project_id: str, collection_id: str, book: str) -> str:
    # Keyed by source collection and book so a second chapter collection never reuses an id
    return stable_id(project_id, "act", f"{collection_id}:{book}")


async def build_outline(
    session_factory: Callable[[], Any],
    chapter_records: Sequence[SourceRecord],
    project_id: str,
    *,
    collection_id: str = "",
    default_book: str = "Imported Story",
    imported_at: datetime | None = None,
    imported_from: str = "notion",
) -> int:
    """Persist an act -> chapter outline for the given chapter records.

    One act per book; chapter nodes are only written once their act is stored.
    Returns the number of nodes actually persisted.
    """
    provenance: dict[str, Any] = {"project_id": project_id, "imported_from": imported_from}
    if imported_at is not None:
        provenance["imported_at"] = imported_at

    persisted = 0
    for index, (book, chapters) in enumerate(group_by_book(chapter_records, default_book).items(), 1):
        act = OutlineNodeEntity(
            **provenance,
            id=act_id(project_id, collection_id, book),
            title=book,
            type="act",
            description=f"Imported from Notion with {len(chapters)} chapters",
            status="planned",
            order=index,
        )
        try:
            await repos.insert_batch(
                session_factory, models.OutlineNode, [act], entity_type="outline nodes"
            )
        except ImporterError as e:
            log.warning("outline.act.failed", project_id=project_id, book=book, error=str(e))
            continue
        persisted += 1

        nodes = [
            OutlineNodeEntity(
                **provenance,
                id=stable_id(project_id, "outline", record.id),
                parent_id=act.id,
                title=record.display_name,
                type="chapter",
                description=chapter_notes(record),
                order=chapter_number(record) or 1,
            )
            for record in chapters
        ]
        try:
            persisted += await repos.insert_batch(
                session_factory, models.OutlineNode, nodes, entity_type="outline nodes"
            )
        except ImporterError as e:
            log.warning(
                "outline.chapters.failed",
                project_id=project_id,
                book=book,
                count=len(nodes),
                error=str(e),
            )

    log.info("outline.built", project_id=project_id, nodes=persisted)
    return persisted
