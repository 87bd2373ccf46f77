"""Per-type entity importers.

Each importer maps every record of one collection, writes them as a single
batch, and reports what it did as an ``ImportOutcome``. Chapter and location
collections also feed a second store (the outline tree, world elements).

A rejected primary batch raises ``StoreWriteError``; the orchestrator turns it
into a collection-scoped error line.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any, ClassVar

import structlog
from pydantic import BaseModel

from Storyloom import models, repos
from Storyloom.errors import StoreWriteError
from Storyloom.importer_context import CountKey, ImportOutcome, PageKey
from Storyloom.mapper import (
    map_chapter,
    map_character,
    map_location,
    map_plot_thread,
    map_world_element,
)
from Storyloom.metrics import inc_counter, timed
from Storyloom.outline import build_outline
from Storyloom.schemas import CollectionType, SourceRecord

log = structlog.get_logger()

SessionFactory = Callable[[], Any]


class EntityImporter:
    """Base importer: map, write one batch, note the result."""

    entity_type: ClassVar[str]
    count_key: ClassVar[CountKey]
    page: ClassVar[PageKey]
    model: ClassVar[type[models.Base]]

    def __init__(
        self,
        *,
        imported_at: datetime | None = None,
        source_label: str = "notion",
        default_book: str = "Imported Story",
        collection_id: str = "",
    ):
        self.imported_at = imported_at or datetime.now(timezone.utc)
        self.source_label = source_label
        self.default_book = default_book
        self.collection_id = collection_id

    @property
    def provenance(self) -> dict[str, Any]:
        return {"imported_at": self.imported_at, "imported_from": self.source_label}

    def map_record(self, record: SourceRecord, project_id: str) -> BaseModel:
        raise NotImplementedError

    def describe(self, outcome: ImportOutcome) -> str:
        raise NotImplementedError

    async def after_write(
        self,
        session_factory: SessionFactory,
        records: Sequence[SourceRecord],
        project_id: str,
        outcome: ImportOutcome,
    ) -> None:
        """Hook for importers that also feed a secondary store."""

    async def run(
        self,
        session_factory: SessionFactory,
        records: Sequence[SourceRecord],
        project_id: str,
    ) -> ImportOutcome:
        outcome = ImportOutcome()
        if not records:
            return outcome

        entities = [self.map_record(record, project_id) for record in records]
        with timed("importer.batch_ms"):
            written = await repos.insert_batch(
                session_factory, self.model, entities, entity_type=self.entity_type
            )
        outcome.add_count(self.count_key, written)
        inc_counter(f"importer.entities.{self.count_key}", written)

        await self.after_write(session_factory, records, project_id, outcome)
        outcome.add_note(self.page, self.describe(outcome))
        log.info(
            "importer.entities.written",
            entity_type=self.entity_type,
            project_id=project_id,
            counts=outcome.counts,
        )
        return outcome


class CharacterImporter(EntityImporter):
    entity_type = "characters"
    count_key = "characters"
    page = "characters_page"
    model = models.Character

    def map_record(self, record: SourceRecord, project_id: str) -> BaseModel:
        return map_character(record, project_id, **self.provenance)

    def describe(self, outcome: ImportOutcome) -> str:
        return (
            f"{outcome.counts['characters']} characters imported with roles, "
            "abilities, and detailed descriptions"
        )


class PlotThreadImporter(EntityImporter):
    entity_type = "plot threads"
    count_key = "plot_threads"
    page = "plot_page"
    model = models.PlotThread

    def map_record(self, record: SourceRecord, project_id: str) -> BaseModel:
        return map_plot_thread(record, project_id, **self.provenance)

    def describe(self, outcome: ImportOutcome) -> str:
        return f"{outcome.counts['plot_threads']} plot threads imported with progress tracking"


class ChapterImporter(EntityImporter):
    entity_type = "chapters"
    count_key = "chapters"
    page = "outline_page"
    model = models.Chapter

    def map_record(self, record: SourceRecord, project_id: str) -> BaseModel:
        return map_chapter(record, project_id, default_book=self.default_book, **self.provenance)

    async def after_write(
        self,
        session_factory: SessionFactory,
        records: Sequence[SourceRecord],
        project_id: str,
        outcome: ImportOutcome,
    ) -> None:
        nodes = await build_outline(
            session_factory,
            records,
            project_id,
            collection_id=self.collection_id,
            default_book=self.default_book,
            **self.provenance,
        )
        outcome.add_count("outline_nodes", nodes)

    def describe(self, outcome: ImportOutcome) -> str:
        return (
            f"{outcome.counts['chapters']} chapters organized into "
            f"{outcome.counts.get('outline_nodes', 0)} outline nodes"
        )


class LocationImporter(EntityImporter):
    entity_type = "locations"
    count_key = "locations"
    page = "world_building_page"
    model = models.Location

    def map_record(self, record: SourceRecord, project_id: str) -> BaseModel:
        return map_location(record, project_id, **self.provenance)

    async def after_write(
        self,
        session_factory: SessionFactory,
        records: Sequence[SourceRecord],
        project_id: str,
        outcome: ImportOutcome,
    ) -> None:
        # Locations also show up on the world-building page as elements
        elements = [
            map_world_element(record, project_id, category="location", **self.provenance)
            for record in records
        ]
        try:
            written = await repos.insert_batch(
                session_factory, models.WorldElement, elements, entity_type="world elements"
            )
        except StoreWriteError as e:
            log.warning("importer.world_elements.failed", project_id=project_id, error=str(e))
            outcome.errors.append(str(e))
            return
        outcome.add_count("world_elements", written)
        inc_counter("importer.entities.world_elements", written)

    def describe(self, outcome: ImportOutcome) -> str:
        return (
            f"{outcome.counts['locations']} locations imported with geography "
            "and culture details"
        )


class WorldElementImporter(EntityImporter):
    entity_type = "world elements"
    count_key = "world_elements"
    page = "world_building_page"
    model = models.WorldElement

    def map_record(self, record: SourceRecord, project_id: str) -> BaseModel:
        return map_world_element(record, project_id, **self.provenance)

    def describe(self, outcome: ImportOutcome) -> str:
        return (
            f"{outcome.counts['world_elements']} miscellaneous elements imported "
            "as world-building content"
        )


IMPORTERS: dict[CollectionType, type[EntityImporter]] = {
    "character": CharacterImporter,
    "plot": PlotThreadImporter,
    "chapter": ChapterImporter,
    "location": LocationImporter,
    "unknown": WorldElementImporter,
}


def get_importer(collection_type: str, **kwargs: Any) -> EntityImporter:
    """Importer instance for a collection type; unknown types fall back to world elements."""
    cls = IMPORTERS.get(collection_type, WorldElementImporter)  # type: ignore[call-overload]
    return cls(**kwargs)


__all__ = [
    "EntityImporter",
    "CharacterImporter",
    "PlotThreadImporter",
    "ChapterImporter",
    "LocationImporter",
    "WorldElementImporter",
    "IMPORTERS",
    "get_importer",
]
