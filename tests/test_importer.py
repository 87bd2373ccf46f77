from datetime import datetime, timedelta, timezone

import httpx
import orjson
import pytest
from sqlalchemy import func, select

from Storyloom import importer, models, repos
from Storyloom.config import Settings
from Storyloom.db import session_scope
from Storyloom.errors import AuthenticationError, EligibilityError, ProjectCreationError
from Storyloom.importer import (
    format_import_summary,
    import_collections,
    preview_import,
    run_import,
)
from Storyloom.importers import PlotThreadImporter
from Storyloom.metrics import get_counter
from Storyloom.schemas import ImportedCounts, ImportReport, SourceCollection, SourceRecord

CHAR_DB = "11111111111111111111111111111111"
CHAP_DB = "22222222222222222222222222222222"
MISSING_DB = "33333333333333333333333333333333"


def _collection(name: str, kind: str, *records: SourceRecord) -> SourceCollection:
    return SourceCollection(id=name, name=name, inferred_type=kind, records=list(records))


def _rec(rid: str, name: str, **props) -> SourceRecord:
    return SourceRecord(id=rid, display_name=name, raw_properties=props)


async def _count(model) -> int:
    async with session_scope() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar_one()


async def _make_eligible(user_id: str = "u1") -> None:
    async with session_scope() as s:
        await repos.upsert_user_profile(s, user_id, subscription_status="active")


def _settings() -> Settings:
    return Settings(notion_api_url="https://notion.test/v1")


def _json(payload, status=200) -> httpx.Response:
    return httpx.Response(status, content=orjson.dumps(payload))


def _notion_handler(*, token_ok: bool = True):
    def title(text):
        return {"type": "title", "title": [{"plain_text": text}]}

    databases = {
        CHAR_DB: (
            {"title": [{"plain_text": "Characters"}], "properties": {"Name": {}, "Role": {}}},
            [
                {
                    "id": "elena",
                    "properties": {
                        "Name": title("Elena"),
                        "Role": {"type": "select", "select": {"name": "Protagonist"}},
                        "Age": {"type": "rich_text", "rich_text": [{"plain_text": "34 years old"}]},
                    },
                }
            ],
        ),
        CHAP_DB: (
            {"title": [{"plain_text": "Chapters"}], "properties": {"Name": {}, "Word Count": {}}},
            [
                {
                    "id": "ch1",
                    "properties": {
                        "Name": title("The Beginning"),
                        "Chapter": {"type": "number", "number": 1},
                        "Word Count": {"type": "number", "number": 1200},
                    },
                }
            ],
        ),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/v1/users/me":
            return _json({"object": "user"}) if token_ok else _json({"message": "bad token"}, 401)
        for db_id, (meta, pages) in databases.items():
            if path == f"/v1/databases/{db_id}":
                return _json(meta)
            if path == f"/v1/databases/{db_id}/query":
                return _json({"results": pages, "has_more": False, "next_cursor": None})
        return _json({"message": "Could not find database"}, 404)

    return handler


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_second_collection_failing_does_not_stop_the_run(monkeypatch):
    async def _boom(self, session_factory, records, project_id):
        raise RuntimeError("plot table exploded")

    monkeypatch.setattr(PlotThreadImporter, "run", _boom)
    collections = [
        _collection("Characters", "character", _rec("p1", "Elena")),
        _collection("Plots", "plot", _rec("p2", "Heist")),
        _collection("Atlas", "location", _rec("p3", "Ironhold")),
    ]

    report = await import_collections(collections, "Saga", "u1", settings=_settings())

    assert report.success is True
    assert report.errors == ["Failed to import Plots: plot table exploded"]
    assert report.imported.characters == 1
    assert report.imported.locations == 1
    assert report.imported.world_elements == 1
    assert report.imported.plot_threads == 0
    assert report.project_id
    assert get_counter("importer.collections.failed") == 1
    assert get_counter("importer.collections.imported") == 2
    assert get_counter("importer.run") == 1


@pytest.mark.asyncio
async def test_import_collections_writes_legacy_items_and_project():
    collections = [
        _collection("Characters", "character", _rec("p1", "Elena"), _rec("p2", "Bram")),
        _collection("Misc", "unknown", _rec("m1", "Magic Runes")),
    ]

    report = await import_collections(collections, "Saga", "u1", settings=_settings())

    async with session_scope() as s:
        project = await repos.get_project(s, report.project_id)
        items = await repos.list_rows(s, models.ImportedItem, report.project_id)
    assert project.name == "Saga"
    assert project.description.startswith("Imported from Notion on ")
    assert sorted(i.type for i in items) == ["character", "character", "research"]
    assert report.planning_page_distribution.world_building_page == [
        "1 miscellaneous elements imported as world-building content"
    ]


@pytest.mark.asyncio
async def test_project_creation_failure_is_fatal(monkeypatch):
    async def _fail(*a, **k):
        raise ProjectCreationError("db down")

    monkeypatch.setattr(repos, "create_project", _fail)
    with pytest.raises(ProjectCreationError):
        await import_collections(
            [_collection("Characters", "character", _rec("p1", "Elena"))], "Saga", "u1"
        )
    assert await _count(models.Character) == 0


@pytest.mark.asyncio
async def test_run_import_end_to_end():
    await _make_eligible()

    report = await run_import(
        [CHAR_DB, f"https://www.notion.so/ws/Chapters-{CHAP_DB}"],
        "secret-token",
        "My Saga",
        "u1",
        settings=_settings(),
        http_client=_http(_notion_handler()),
    )

    assert report.success is True
    assert report.errors == []
    assert report.to_payload()["imported"] == {
        "characters": 1,
        "plotThreads": 0,
        "chapters": 1,
        "locations": 0,
        "worldElements": 0,
        "outlineNodes": 2,
    }
    async with session_scope() as s:
        elena = await s.get(models.Character, f"{report.project_id}:character:elena")
        chapter = await s.get(models.Chapter, f"{report.project_id}:chapter:ch1")
    assert elena.role == "protagonist"
    assert elena.age == 34
    assert chapter.word_count == 1200
    assert await _count(models.ImportedItem) == 2


@pytest.mark.asyncio
async def test_run_import_records_unreachable_reference():
    await _make_eligible()

    report = await run_import(
        [CHAR_DB, MISSING_DB, "not a reference"],
        "secret-token",
        "My Saga",
        "u1",
        settings=_settings(),
        http_client=_http(_notion_handler()),
    )

    assert report.success is True
    assert report.imported.characters == 1
    assert len(report.errors) == 2
    assert report.errors[0].startswith(f"Failed to import {MISSING_DB}: Database not found")
    assert report.errors[1].startswith("Failed to import not a reference: Invalid Notion database reference")


@pytest.mark.asyncio
async def test_run_import_nothing_loaded_creates_no_project():
    await _make_eligible()

    report = await run_import(
        [MISSING_DB],
        "secret-token",
        "My Saga",
        "u1",
        settings=_settings(),
        http_client=_http(_notion_handler()),
    )

    assert report.success is False
    assert "projectId" not in report.to_payload()
    assert await _count(models.Project) == 0


@pytest.mark.asyncio
async def test_run_import_bad_token_is_fatal():
    await _make_eligible()
    with pytest.raises(AuthenticationError):
        await run_import(
            [CHAR_DB],
            "bad",
            "My Saga",
            "u1",
            settings=_settings(),
            http_client=_http(_notion_handler(token_ok=False)),
        )
    assert await _count(models.Project) == 0


@pytest.mark.asyncio
async def test_run_import_requires_eligibility():
    async with session_scope() as s:
        await repos.upsert_user_profile(
            s, "u1", trial_expires_at=datetime.now(timezone.utc) - timedelta(days=1)
        )
    with pytest.raises(EligibilityError):
        await run_import(
            [CHAR_DB],
            "secret-token",
            "My Saga",
            "u1",
            settings=_settings(),
            http_client=_http(_notion_handler()),
        )


@pytest.mark.asyncio
async def test_preview_import_writes_nothing():
    preview = await preview_import(
        [CHAR_DB, MISSING_DB],
        "secret-token",
        settings=_settings(),
        http_client=_http(_notion_handler()),
    )
    assert [(c.name, c.inferred_type) for c in preview.collections] == [("Characters", "character")]
    assert len(preview.errors) == 1
    assert await _count(models.Project) == 0


def test_format_import_summary():
    ok = ImportReport(
        success=True,
        project_id="p",
        imported=ImportedCounts(characters=3, chapters=2, outline_nodes=3),
    )
    assert format_import_summary(ok) == "Successfully imported 3 characters, 2 chapters, 3 outline nodes"

    partial = ok.model_copy(update={"errors": ["Failed to import X: boom"]})
    assert format_import_summary(partial).endswith("(1 errors)")

    failed = ImportReport(success=False, errors=["a", "b"])
    assert format_import_summary(failed) == "Import failed: a, b"

    empty = ImportReport(success=True, project_id="p")
    assert format_import_summary(empty) == "No records were imported"


def test_module_exports():
    assert set(importer.__all__) >= {"run_import", "import_collections", "preview_import"}


@pytest.mark.asyncio
async def test_two_chapter_collections_each_get_their_own_outline():
    collections = [
        _collection("Book 1 Chapters", "chapter", _rec("c1", "Opening", Books=["Book One"])),
        _collection("Book 2 Chapters", "chapter", _rec("c2", "Return", Books=["Book Two"])),
    ]

    report = await import_collections(collections, "Saga", "u1", settings=_settings())

    assert report.errors == []
    assert report.imported.chapters == 2
    assert report.imported.outline_nodes == 4
    assert report.planning_page_distribution.outline_page == [
        "1 chapters organized into 2 outline nodes",
        "1 chapters organized into 2 outline nodes",
    ]
    async with session_scope() as s:
        nodes = await repos.list_rows(s, models.OutlineNode, report.project_id)
    act_ids = {n.id for n in nodes if n.type == "act"}
    assert len(act_ids) == 2
    assert all(n.parent_id in act_ids for n in nodes if n.type == "chapter")
