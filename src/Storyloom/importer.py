"""Notion import orchestration.

A run walks ``create-project -> import-collections -> legacy write -> done``:

* The project is created first; if that fails nothing else is attempted.
* Collections are imported one after another. A failure is recorded against
  that collection and the run moves on.
* Every source record is finally mirrored into ``imported_items`` for the
  legacy library page. That step is best-effort and only logged on failure.

``run_import`` is the entry point for callers holding a token and a list of
database references; ``import_collections`` takes already-loaded collections.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from structlog.contextvars import bind_contextvars

from Storyloom import models, repos
from Storyloom.config import Settings, load_settings
from Storyloom.db import session_scope
from Storyloom.eligibility import can_import
from Storyloom.errors import (
    AuthenticationError,
    EligibilityError,
    ImporterError,
    ProjectCreationError,
)
from Storyloom.importer_context import ImportRunContext
from Storyloom.importers import get_importer
from Storyloom.logging import bind_run_context
from Storyloom.mapper import map_library_item
from Storyloom.metrics import inc_counter
from Storyloom.schemas import ImportReport, SourceCollection
from Storyloom.source_client import NotionSourceClient

log = structlog.get_logger()


@dataclass(frozen=True)
class ImportPreview:
    collections: list[SourceCollection] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


async def _create_project(user_id: str, project_name: str, imported_at: datetime) -> str:
    description = f"Imported from Notion on {imported_at.date().isoformat()}"
    try:
        async with session_scope() as s:
            project = await repos.create_project(
                s, user_id=user_id, name=project_name, description=description
            )
            project_id = project.id
    except SQLAlchemyError as e:
        raise ProjectCreationError(str(e)) from e
    log.info("importer.project.created", project_id=project_id, user_id=user_id)
    return project_id


async def _write_legacy_items(
    collections: Sequence[SourceCollection],
    project_id: str,
    user_id: str,
    imported_at: datetime,
    source_label: str,
) -> int:
    try:
        items = [
            map_library_item(
                record,
                collection.inferred_type,
                project_id,
                user_id,
                imported_at=imported_at,
                imported_from=source_label,
            )
            for collection in collections
            for record in collection.records
        ]
        written = await repos.insert_batch(
            session_scope, models.ImportedItem, items, entity_type="library items"
        )
    except (ImporterError, ValidationError) as e:
        log.warning("importer.legacy.failed", project_id=project_id, error=str(e))
        return 0
    log.info("importer.legacy.written", project_id=project_id, items=written)
    return written


async def import_collections(
    collections: Sequence[SourceCollection],
    project_name: str,
    user_id: str,
    *,
    settings: Settings | None = None,
    context: ImportRunContext | None = None,
) -> ImportReport:
    """Create a project and import every collection into it.

    Raises ``ProjectCreationError`` when the project cannot be created; all
    other failures end up in ``ImportReport.errors``.
    """
    settings = settings or load_settings()
    ctx = context or ImportRunContext()
    imported_at = datetime.now(timezone.utc)
    inc_counter("importer.run")

    ctx.project_id = await _create_project(user_id, project_name, imported_at)
    bind_contextvars(project_id=ctx.project_id)

    for collection in collections:
        importer = get_importer(
            collection.inferred_type,
            imported_at=imported_at,
            source_label=settings.import_source_label,
            default_book=settings.import_default_book,
            collection_id=collection.id,
        )
        try:
            outcome = await importer.run(session_scope, collection.records, ctx.project_id)
        except Exception as e:
            inc_counter("importer.collections.failed")
            log.warning(
                "importer.collection.failed",
                collection=collection.name,
                inferred_type=collection.inferred_type,
                error=str(e),
            )
            ctx.record_failure(collection.name, e)
            continue
        inc_counter("importer.collections.imported")
        ctx.record_outcome(outcome)
        log.info(
            "importer.collection.imported",
            collection=collection.name,
            inferred_type=collection.inferred_type,
            counts=outcome.counts,
        )

    await _write_legacy_items(
        collections, ctx.project_id, user_id, imported_at, settings.import_source_label
    )

    report = ctx.to_report()
    log.info(
        "importer.run.completed",
        project_id=ctx.project_id,
        success=report.success,
        total=report.imported.total(),
        errors=len(report.errors),
    )
    return report


async def _load_collections(
    client: NotionSourceClient, source_references: Sequence[str], ctx: ImportRunContext
) -> list[SourceCollection]:
    collections: list[SourceCollection] = []
    for reference in source_references:
        try:
            collections.append(await client.load_collection(reference))
        except AuthenticationError:
            # A token that stops working mid-run is fatal, not per-collection
            raise
        except ImporterError as e:
            inc_counter("importer.collections.failed")
            log.warning("importer.reference.failed", reference=reference, error=str(e))
            ctx.record_failure(reference, e)
    return collections


async def run_import(
    source_references: Sequence[str],
    auth_token: str,
    project_name: str,
    user_id: str,
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ImportReport:
    """Validate, fetch and import a set of Notion databases into a new project."""
    settings = settings or load_settings()
    ctx = ImportRunContext()
    bind_run_context(user_id=user_id)
    log.info("importer.run.started", user_id=user_id, references=len(source_references))

    async with NotionSourceClient(auth_token, settings, http_client=http_client) as client:
        if not await client.validate_token():
            raise AuthenticationError("Invalid Notion token. Please check your integration token.")
        if not await can_import(user_id):
            raise EligibilityError(user_id)
        collections = await _load_collections(client, source_references, ctx)

    if not collections:
        log.warning("importer.run.nothing_loaded", errors=len(ctx.errors))
        return ImportReport(success=False, errors=list(ctx.errors))

    return await import_collections(
        collections, project_name, user_id, settings=settings, context=ctx
    )


async def preview_import(
    source_references: Sequence[str],
    auth_token: str,
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ImportPreview:
    """Fetch and classify collections without writing anything."""
    settings = settings or load_settings()
    ctx = ImportRunContext()
    async with NotionSourceClient(auth_token, settings, http_client=http_client) as client:
        if not await client.validate_token():
            raise AuthenticationError("Invalid Notion token. Please check your integration token.")
        collections = await _load_collections(client, source_references, ctx)
    return ImportPreview(collections=collections, errors=list(ctx.errors))


_SUMMARY_LABELS = (
    ("characters", "characters"),
    ("plot_threads", "plot threads"),
    ("chapters", "chapters"),
    ("locations", "locations"),
    ("world_elements", "world elements"),
    ("outline_nodes", "outline nodes"),
)


def format_import_summary(report: ImportReport) -> str:
    if not report.success:
        return f"Import failed: {', '.join(report.errors)}"
    counts = report.imported
    if counts.total() == 0:
        return "No records were imported"
    parts = [
        f"{getattr(counts, key)} {label}" for key, label in _SUMMARY_LABELS if getattr(counts, key)
    ]
    summary = f"Successfully imported {', '.join(parts)}"
    if report.errors:
        summary += f" ({len(report.errors)} errors)"
    return summary


__all__ = [
    "ImportPreview",
    "import_collections",
    "run_import",
    "preview_import",
    "format_import_summary",
]
