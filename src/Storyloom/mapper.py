"""Per-type mapping from Notion records to normalized entities.

Notion column names are whatever the author typed, so every field lookup goes
through ``first_present`` with an ordered list of spellings seen in the wild
(``"Age"`` and ``"Age "`` with a trailing space are both common). A missing
optional field yields an empty value; it never aborts a mapping.

Ids are derived, not allocated: ``stable_id(project_id, kind, source_id)`` is
known before anything is written, so cross references (outline parents,
library items) can be wired up front.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from Storyloom.classifier import guess_world_category
from Storyloom.schemas import (
    CharacterEntity,
    ChapterEntity,
    CollectionType,
    LibraryItemEntity,
    LocationEntity,
    PlotThreadEntity,
    SourceRecord,
    WorldElementCategory,
    WorldElementEntity,
)

_INT_RE = re.compile(r"(\d+)")

_ROLE_MAP = {
    "main character": "protagonist",
    "protagonist": "protagonist",
    "antagonist": "antagonist",
    "secondary character": "supporting",
    "supporting character": "supporting",
    "supported character": "supporting",
    "deuteragonist": "supporting",
    "tritagonist": "supporting",
    "tertagonists": "supporting",
    "foil character": "supporting",
    "confidant": "supporting",
    "love interest": "supporting",
    "minor character": "minor",
}
_CANONICAL_ROLES = frozenset({"protagonist", "antagonist", "supporting", "minor"})

_PLOT_TYPE_MAP = {
    "main plot": "main",
    "main": "main",
    "sub plot": "subplot",
    "subplot": "subplot",
    "side story": "side_story",
    "side plot": "side_story",
}
_PLOT_COLORS = {"main": "#3B82F6", "subplot": "#10B981", "side_story": "#8B5CF6"}
_DEFAULT_PLOT_COLOR = "#6B7280"
_DONE_WORDS = frozenset({"yes", "done", "complete", "completed", "finished"})

_CHAPTER_STATUS_MAP = {
    "not started": "not_started",
    "in progress": "in_progress",
    "rough editing": "draft",
    "final editing": "editing",
    "done": "completed",
    "completed": "completed",
}
_LIBRARY_STATUS_MAP = {
    "not started": "draft",
    "in progress": "in_progress",
    "done": "complete",
    "published": "published",
}
_LIBRARY_TYPES = {"character": "character", "plot": "plot", "chapter": "chapter"}

_IMPLICIT_TAG_KEYS = ("type", "role", "status")
_MAX_IMPLICIT_TAG_LEN = 50


def spellings(*names: str) -> tuple[str, ...]:
    """Candidate keys for each name: as written, then with a trailing space."""
    return tuple(s for name in names for s in (name, f"{name} "))


def _present(value: Any) -> bool:
    return value is not None and value != "" and value != []


def first_present(
    props: Mapping[str, Any], candidates: Iterable[str], default: Any = None
) -> Any:
    """Value of the first candidate key holding a non-empty value."""
    for key in candidates:
        value = props.get(key)
        if _present(value):
            return value
    return default


def stable_id(project_id: str, kind: str, source_id: str) -> str:
    return f"{project_id}:{kind}:{source_id}"


# -----------------------------
# Scalar coercions
# -----------------------------


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value if _present(v))
    return str(value)


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, list):
        return as_int(value[0], default) if value else default
    if isinstance(value, str):
        match = _INT_RE.search(value.replace(",", ""))
        return int(match.group(1)) if match else default
    return default


def parse_age(value: Any) -> int | None:
    """First integer in the value: ``"34 years old"`` -> 34."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None
    match = _INT_RE.search(as_text(value))
    return int(match.group(1)) if match else None


def parse_progress(value: Any) -> int:
    """Completion percentage clamped to 0..100.

    Notion percent-formatted numbers arrive as fractions (0.75).
    """
    if isinstance(value, bool):
        return 100 if value else 0
    if isinstance(value, float) and 0 < value <= 1:
        value = value * 100
    if isinstance(value, (int, float)):
        pct = int(round(value))
    else:
        match = _INT_RE.search(as_text(value))
        pct = int(match.group(1)) if match else 0
    return min(100, max(0, pct))


# -----------------------------
# Vocabulary mapping
# -----------------------------


def _label(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else ""
    return as_text(value).strip()


def map_role(value: Any) -> str:
    label = _label(value).lower()
    if label in _CANONICAL_ROLES:
        return label
    return _ROLE_MAP.get(label, "minor")


def map_plot_type(value: Any) -> str:
    return _PLOT_TYPE_MAP.get(_label(value).lower(), "subplot")


def plot_color(value: Any) -> str:
    plot_type = _PLOT_TYPE_MAP.get(_label(value).lower())
    return _PLOT_COLORS.get(plot_type, _DEFAULT_PLOT_COLOR) if plot_type else _DEFAULT_PLOT_COLOR


def map_plot_status(finished: Any, status: Any = None) -> str:
    if finished is True:
        return "completed"
    for value in (finished, status):
        if isinstance(value, str) and value.strip().lower() in _DONE_WORDS:
            return "completed"
    return "in_progress"


def map_chapter_status(value: Any) -> str:
    return _CHAPTER_STATUS_MAP.get(_label(value).lower(), "planned")


def map_library_status(value: Any) -> str:
    return _LIBRARY_STATUS_MAP.get(_label(value).lower(), "draft")


# -----------------------------
# Generic property scans
# -----------------------------


def extract_tags(props: Mapping[str, Any]) -> list[str]:
    """Explicit tag columns plus short type/role/status labels, deduplicated."""
    tags: list[str] = []
    for key, value in props.items():
        lowered = key.lower()
        if "tag" in lowered:
            values = value if isinstance(value, list) else [value]
            tags.extend(v.strip() for v in values if isinstance(v, str) and v.strip())
        elif (
            isinstance(value, str)
            and value.strip()
            and len(value) < _MAX_IMPLICIT_TAG_LEN
            and any(k in lowered for k in _IMPLICIT_TAG_KEYS)
        ):
            tags.append(value.strip())
    return list(dict.fromkeys(tags))


def extract_traits(props: Mapping[str, Any]) -> list[str]:
    traits: list[str] = []
    for key in ("Abilities", "Techniques", "Multi-select", "Traits", "Trait"):
        value = props.get(key)
        if isinstance(value, list):
            traits.extend(str(v) for v in value if _present(v))
        elif isinstance(value, str) and value:
            traits.append(value)
    return list(dict.fromkeys(traits))


def extract_fantasy_class(props: Mapping[str, Any]) -> str:
    return as_text(first_present(props, ("Multi-select", "Class", "Fantasy Class", "Role"), ""))


def build_description(record: SourceRecord) -> str:
    parts = [
        record.extracted_content.strip(),
        as_text(first_present(record.properties, spellings("Description", "Summary"), "")).strip(),
    ]
    return "\n\n".join(dict.fromkeys(p for p in parts if p))


def book_name(record: SourceRecord, default: str = "Imported Story") -> str:
    value = first_present(record.properties, spellings("Books", "Book"))
    if isinstance(value, list):
        value = next((v for v in value if isinstance(v, str) and v.strip()), None)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def chapter_number(record: SourceRecord) -> int:
    return as_int(first_present(record.properties, spellings("Chapter", "Chapter Number"), 0))


def chapter_notes(record: SourceRecord) -> str:
    return as_text(first_present(record.properties, spellings("Notes", "Description"), ""))


def estimate_word_count(text: str) -> int:
    return len(text.split()) if text else 0


# -----------------------------
# Entity mappers
# -----------------------------


def _base(
    record: SourceRecord,
    project_id: str,
    kind: str,
    imported_at: datetime | None,
    imported_from: str,
) -> dict[str, Any]:
    base: dict[str, Any] = {
        "id": stable_id(project_id, kind, record.id),
        "project_id": project_id,
        "imported_from": imported_from,
    }
    if imported_at is not None:
        base["imported_at"] = imported_at
    return base


def map_character(
    record: SourceRecord,
    project_id: str,
    *,
    imported_at: datetime | None = None,
    imported_from: str = "notion",
) -> CharacterEntity:
    props = record.properties
    race = first_present(props, spellings("Race"), "")
    if isinstance(race, list):
        race = race[0] if race else ""
    return CharacterEntity(
        **_base(record, project_id, "character", imported_at, imported_from),
        name=record.display_name,
        role=map_role(first_present(props, spellings("Role", "Type"), "")),
        age=parse_age(first_present(props, spellings("Age"))),
        race=as_text(race),
        description=build_description(record),
        background=as_text(first_present(props, spellings("Background", "Backstory"), "")),
        physical_description=as_text(first_present(props, spellings("Face Claim", "Appearance"), "")),
        fantasy_class=extract_fantasy_class(props),
        traits=extract_traits(props),
        tags=extract_tags(props),
    )


def map_plot_thread(
    record: SourceRecord,
    project_id: str,
    *,
    imported_at: datetime | None = None,
    imported_from: str = "notion",
) -> PlotThreadEntity:
    props = record.properties
    kind_label = first_present(props, spellings("Stats", "Type"), "")
    return PlotThreadEntity(
        **_base(record, project_id, "plot", imported_at, imported_from),
        title=record.display_name,
        description=build_description(record),
        type=map_plot_type(kind_label),
        status=map_plot_status(props.get("Finished"), first_present(props, spellings("Status"))),
        color=plot_color(kind_label),
        completion_percentage=parse_progress(first_present(props, spellings("Progress"), 0)),
        tags=extract_tags(props),
    )


def map_chapter(
    record: SourceRecord,
    project_id: str,
    *,
    default_book: str = "Imported Story",
    imported_at: datetime | None = None,
    imported_from: str = "notion",
) -> ChapterEntity:
    props = record.properties
    number = chapter_number(record)
    return ChapterEntity(
        **_base(record, project_id, "chapter", imported_at, imported_from),
        title=record.display_name,
        chapter_number=number,
        description=chapter_notes(record),
        status=map_chapter_status(first_present(props, spellings("Status"), "")),
        word_count=max(0, as_int(first_present(props, spellings("Word Count", "Words"), 0))),
        order=number,
        book=book_name(record, default_book),
    )


def map_location(
    record: SourceRecord,
    project_id: str,
    *,
    imported_at: datetime | None = None,
    imported_from: str = "notion",
) -> LocationEntity:
    props = record.properties

    def field(*names: str) -> str:
        return as_text(first_present(props, spellings(*names), ""))

    return LocationEntity(
        **_base(record, project_id, "location", imported_at, imported_from),
        name=record.display_name,
        description=build_description(record),
        geography=field("Geography", "Terrain"),
        culture=field("Culture"),
        climate=field("Climate"),
        population=field("Population"),
        government=field("Government"),
        economy=field("Economy"),
        notable_features=field("Notable Features"),
        tags=extract_tags(props),
    )


def map_world_element(
    record: SourceRecord,
    project_id: str,
    *,
    category: WorldElementCategory | None = None,
    imported_at: datetime | None = None,
    imported_from: str = "notion",
) -> WorldElementEntity:
    description = build_description(record)
    return WorldElementEntity(
        **_base(record, project_id, "world", imported_at, imported_from),
        title=record.display_name,
        category=category or guess_world_category(record.display_name, description),
        description=description,
        tags=extract_tags(record.properties),
    )


def library_content(record: SourceRecord, record_type: CollectionType) -> str:
    props = record.properties
    parts = [build_description(record)]
    if record_type == "character":
        for label in ("Role", "Age"):
            value = first_present(props, spellings(label))
            if _present(value):
                parts.append(f"{label}: {as_text(value)}")
    elif record_type == "chapter":
        for label in ("Status", "Word Count"):
            value = first_present(props, spellings(label))
            if _present(value):
                parts.append(f"{label}: {as_text(value)}")
    return "\n\n".join(p for p in parts if p)


def map_library_item(
    record: SourceRecord,
    record_type: CollectionType,
    project_id: str,
    user_id: str,
    *,
    imported_at: datetime | None = None,
    imported_from: str = "notion",
) -> LibraryItemEntity:
    is_chapter = record_type == "chapter"
    return LibraryItemEntity(
        **_base(record, project_id, "item", imported_at, imported_from),
        user_id=user_id,
        type=_LIBRARY_TYPES.get(record_type, "research"),
        title=record.display_name,
        content=library_content(record, record_type),
        tags=extract_tags(record.properties),
        word_count=estimate_word_count(record.extracted_content),
        chapter_number=chapter_number(record) if is_chapter else None,
        status=(
            map_library_status(first_present(record.properties, spellings("Status"), ""))
            if is_chapter
            else None
        ),
    )
