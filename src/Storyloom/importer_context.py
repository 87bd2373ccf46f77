"""Run-scoped accumulation of per-collection import outcomes.

Each entity importer hands back an ``ImportOutcome``; the orchestrator folds
them, one collection at a time, into an ``ImportRunContext`` and renders the
caller-facing ``ImportReport`` from it at the end of the run.

The context is plain data. It never touches the store or the network, so it
can be exercised without either.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from Storyloom.schemas import ImportedCounts, ImportReport, PlanningPageDistribution

CountKey = Literal[
    "characters",
    "plot_threads",
    "chapters",
    "locations",
    "world_elements",
    "outline_nodes",
]
PageKey = Literal["characters_page", "plot_page", "world_building_page", "outline_page"]


@dataclass
class ImportOutcome:
    """What one importer achieved for one collection."""

    counts: dict[str, int] = field(default_factory=dict)
    notes: list[tuple[str, str]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def add_count(self, key: CountKey, n: int) -> None:
        self.counts[key] = self.counts.get(key, 0) + n

    def add_note(self, page: PageKey, note: str) -> None:
        self.notes.append((page, note))

    @property
    def total(self) -> int:
        return sum(self.counts.values())


@dataclass
class ImportRunContext:
    """Accumulates outcomes across every collection in one run."""

    project_id: str | None = None
    counts: dict[str, int] = field(default_factory=dict)
    notes: dict[str, list[str]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    collections_imported: int = 0
    collections_failed: int = 0

    def record_outcome(self, outcome: ImportOutcome) -> None:
        for key, n in outcome.counts.items():
            self.counts[key] = self.counts.get(key, 0) + n
        for page, note in outcome.notes:
            self.notes.setdefault(page, []).append(note)
        self.errors.extend(outcome.errors)
        self.collections_imported += 1

    def record_failure(self, collection_name: str, error: BaseException | str) -> None:
        self.errors.append(f"Failed to import {collection_name}: {error}")
        self.collections_failed += 1

    def total_imported(self) -> int:
        return sum(self.counts.values())

    def succeeded(self) -> bool:
        # Partial success still counts: some content made it across
        return not self.errors or self.total_imported() > 0

    def to_report(self) -> ImportReport:
        return ImportReport(
            success=self.succeeded(),
            project_id=self.project_id,
            imported=ImportedCounts(**self.counts),
            errors=list(self.errors),
            planning_page_distribution=PlanningPageDistribution(
                **{page: list(notes) for page, notes in self.notes.items()}
            ),
        )


__all__ = ["ImportOutcome", "ImportRunContext"]
