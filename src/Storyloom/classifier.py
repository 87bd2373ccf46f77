"""Keyword heuristics that tag a Notion database with a collection type.

Property vocabularies overlap between databases (almost every table has some
"Type" or "Status" column), so the checks run in a fixed priority order and
the first hit wins. Characters go first: they are the most common kind of
database and the most distinctively annotated.
"""

from __future__ import annotations

from collections.abc import Iterable

from Storyloom.schemas import CollectionType, WorldElementCategory

# Ordered: earlier entries win when several types match.
TYPE_KEYWORDS: tuple[tuple[CollectionType, tuple[str, ...]], ...] = (
    (
        "character",
        (
            "character",
            "role",
            "age",
            "race",
            "abilities",
            "class",
            "trait",
            "techniques",
            "face claim",
        ),
    ),
    ("plot", ("plot", "storyline", "outline", "progress")),
    ("chapter", ("chapter", "word count")),
    ("location", ("location", "world", "place", "geography", "culture")),
)

WORLD_CATEGORY_KEYWORDS: tuple[tuple[WorldElementCategory, tuple[str, ...]], ...] = (
    ("technology", ("magic", "technology", "tech", "invention")),
    ("culture", ("culture", "religion", "tradition", "language")),
    ("economy", ("economy", "trade", "currency", "market")),
    ("hierarchy", ("hierarchy", "government", "nobility", "faction", "rank")),
    ("location", ("location", "city", "region", "kingdom")),
)


def _contains_any(haystacks: Iterable[str], keywords: Iterable[str]) -> bool:
    words = tuple(keywords)
    return any(kw in text for text in haystacks for kw in words)


def classify(name: str, property_keys: Iterable[str]) -> CollectionType:
    """Infer the collection type from its name and property keys."""
    haystacks = [(name or "").lower(), *((k or "").lower() for k in property_keys)]
    for collection_type, keywords in TYPE_KEYWORDS:
        if _contains_any(haystacks, keywords):
            return collection_type
    return "unknown"


def guess_world_category(name: str, text: str = "") -> WorldElementCategory:
    """Pick a world-building category for a record nothing else claimed."""
    haystacks = [(name or "").lower(), (text or "").lower()]
    for category, keywords in WORLD_CATEGORY_KEYWORDS:
        if _contains_any(haystacks, keywords):
            return category
    return "location"
