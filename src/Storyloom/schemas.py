# schemas.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from Storyloom.extractor import extract_properties

CollectionType = Literal["character", "plot", "chapter", "location", "unknown"]
WorldElementCategory = Literal["location", "culture", "technology", "economy", "hierarchy"]


# -----------------------------
# Source side (ephemeral, one run)
# -----------------------------


@dataclass
class SourceRecord:
    """One Notion page: a raw property bag plus optional body text."""

    id: str
    display_name: str
    raw_properties: dict[str, Any] = field(default_factory=dict)
    extracted_content: str = ""

    @cached_property
    def properties(self) -> dict[str, Any]:
        return extract_properties(self.raw_properties)


@dataclass
class SourceCollection:
    id: str
    name: str
    inferred_type: CollectionType
    property_keys: list[str] = field(default_factory=list)
    records: list[SourceRecord] = field(default_factory=list)


# -----------------------------
# Normalized entities
# -----------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportedEntity(BaseModel):
    """Common id + provenance marker shared by every normalized entity."""

    id: str
    project_id: str
    imported_from: str = "notion"
    imported_at: datetime = Field(default_factory=_utcnow)

    model_config = dict(extra="forbid")


class CharacterEntity(ImportedEntity):
    name: str
    role: str = "minor"
    age: int | None = Field(default=None, ge=0)
    race: str = ""
    description: str = ""
    background: str = ""
    physical_description: str = ""
    fantasy_class: str = ""
    traits: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class PlotThreadEntity(ImportedEntity):
    title: str
    description: str = ""
    type: Literal["main", "subplot", "side_story"] = "subplot"
    status: Literal["in_progress", "completed"] = "in_progress"
    color: str = "#6B7280"
    completion_percentage: int = Field(default=0, ge=0, le=100)
    tags: list[str] = Field(default_factory=list)


class ChapterEntity(ImportedEntity):
    title: str
    chapter_number: int = 0
    description: str = ""
    status: str = "planned"
    word_count: int = Field(default=0, ge=0)
    order: int = 0
    book: str = ""


class LocationEntity(ImportedEntity):
    name: str
    description: str = ""
    geography: str = ""
    culture: str = ""
    climate: str = ""
    population: str = ""
    government: str = ""
    economy: str = ""
    notable_features: str = ""
    tags: list[str] = Field(default_factory=list)


class WorldElementEntity(ImportedEntity):
    title: str
    category: WorldElementCategory = "location"
    description: str = ""
    tags: list[str] = Field(default_factory=list)


class OutlineNodeEntity(ImportedEntity):
    title: str
    type: Literal["act", "chapter"]
    parent_id: str | None = None
    description: str = ""
    status: str = "planned"
    order: int = 1

    @model_validator(mode="after")
    def _two_levels(self):
        # act -> chapter only; acts are roots, chapters always hang off an act
        if self.type == "act" and self.parent_id is not None:
            raise ValueError("act nodes cannot have a parent")
        if self.type == "chapter" and not self.parent_id:
            raise ValueError("chapter nodes require a parent act")
        return self


class LibraryItemEntity(ImportedEntity):
    """Flat record kept for the legacy library page."""

    user_id: str
    type: Literal["character", "plot", "chapter", "research"] = "research"
    title: str
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    word_count: int = 0
    chapter_number: int | None = None
    status: str | None = None


# -----------------------------
# Import report (caller-visible contract)
# -----------------------------


class ImportedCounts(BaseModel):
    characters: int = 0
    plot_threads: int = 0
    chapters: int = 0
    locations: int = 0
    world_elements: int = 0
    outline_nodes: int = 0

    model_config = dict(alias_generator=to_camel, populate_by_name=True)

    def total(self) -> int:
        return sum(self.model_dump().values())


class PlanningPageDistribution(BaseModel):
    characters_page: list[str] = Field(default_factory=list)
    plot_page: list[str] = Field(default_factory=list)
    world_building_page: list[str] = Field(default_factory=list)
    outline_page: list[str] = Field(default_factory=list)

    model_config = dict(alias_generator=to_camel, populate_by_name=True)


class ImportReport(BaseModel):
    success: bool = False
    project_id: str | None = None
    imported: ImportedCounts = Field(default_factory=ImportedCounts)
    errors: list[str] = Field(default_factory=list)
    planning_page_distribution: PlanningPageDistribution = Field(
        default_factory=PlanningPageDistribution
    )

    model_config = dict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """camelCase dict; ``projectId`` is omitted when no project was created."""
        data = self.model_dump(by_alias=True)
        if data.get("projectId") is None:
            data.pop("projectId", None)
        return data
