import pytest
from sqlalchemy import select

from Storyloom import models, repos
from Storyloom.db import session_scope
from Storyloom.errors import StoreWriteError
from Storyloom.outline import act_id, build_outline, group_by_book
from Storyloom.schemas import SourceRecord


def _chapter(rid: str, number: int, book: str | None) -> SourceRecord:
    props: dict = {"Chapter": number, "Notes": f"notes {rid}"}
    if book is not None:
        props["Books"] = [book]
    return SourceRecord(id=rid, display_name=f"Chapter {number}", raw_properties=props)


async def _project() -> str:
    async with session_scope() as s:
        project = await repos.create_project(s, user_id="u1", name="Saga")
        return project.id


def test_group_by_book_keeps_first_seen_order():
    records = [_chapter("a", 1, "Two"), _chapter("b", 1, "One"), _chapter("c", 2, "Two"), _chapter("d", 1, None)]
    groups = group_by_book(records)
    assert list(groups) == ["Two", "One", "Imported Story"]
    assert [r.id for r in groups["Two"]] == ["a", "c"]


@pytest.mark.asyncio
async def test_five_chapters_across_two_books_make_seven_nodes():
    project_id = await _project()
    records = [
        _chapter("c1", 1, "Book One"),
        _chapter("c2", 2, "Book One"),
        _chapter("c3", 3, "Book One"),
        _chapter("c4", 1, "Book Two"),
        _chapter("c5", 2, "Book Two"),
    ]

    count = await build_outline(session_scope, records, project_id)
    assert count == 7

    async with session_scope() as s:
        nodes = (await s.execute(select(models.OutlineNode))).scalars().all()

    acts = {n.id: n for n in nodes if n.type == "act"}
    chapters = [n for n in nodes if n.type == "chapter"]
    assert set(acts) == {act_id(project_id, "", "Book One"), act_id(project_id, "", "Book Two")}
    assert acts[act_id(project_id, "", "Book One")].title == "Book One"
    assert acts[act_id(project_id, "", "Book One")].description == "Imported from Notion with 3 chapters"
    assert acts[act_id(project_id, "", "Book Two")].order == 2
    assert all(n.parent_id is None for n in acts.values())
    assert len(chapters) == 5
    assert all(n.parent_id in acts for n in chapters)
    by_id = {n.id: n for n in chapters}
    c4 = by_id[f"{project_id}:outline:c4"]
    assert c4.parent_id == act_id(project_id, "", "Book Two")
    assert c4.order == 1
    assert c4.description == "notes c4"


@pytest.mark.asyncio
async def test_empty_input_writes_nothing():
    project_id = await _project()
    assert await build_outline(session_scope, [], project_id) == 0


@pytest.mark.asyncio
async def test_failed_act_skips_its_group(monkeypatch):
    project_id = await _project()
    real_insert = repos.insert_batch

    async def _flaky(session_factory, model, entities, *, entity_type):
        if any(e.type == "act" and e.title == "Bad Book" for e in entities):
            raise StoreWriteError(entity_type, "boom")
        return await real_insert(session_factory, model, entities, entity_type=entity_type)

    monkeypatch.setattr(repos, "insert_batch", _flaky)
    records = [_chapter("c1", 1, "Bad Book"), _chapter("c2", 1, "Good Book"), _chapter("c3", 2, "Good Book")]

    assert await build_outline(session_scope, records, project_id) == 3


@pytest.mark.asyncio
async def test_failed_chapter_batch_counts_zero(monkeypatch):
    project_id = await _project()
    real_insert = repos.insert_batch

    async def _no_chapters(session_factory, model, entities, *, entity_type):
        if any(e.type == "chapter" for e in entities):
            raise StoreWriteError(entity_type, "boom")
        return await real_insert(session_factory, model, entities, entity_type=entity_type)

    monkeypatch.setattr(repos, "insert_batch", _no_chapters)
    records = [_chapter("c1", 1, "Only"), _chapter("c2", 2, "Only")]

    assert await build_outline(session_scope, records, project_id) == 1


@pytest.mark.asyncio
async def test_act_ids_are_unique_across_chapter_collections():
    project_id = await _project()

    first = await build_outline(
        session_scope, [_chapter("c1", 1, "Book One")], project_id, collection_id="db-a"
    )
    second = await build_outline(
        session_scope, [_chapter("c2", 1, "Book One")], project_id, collection_id="db-b"
    )

    assert (first, second) == (2, 2)
    async with session_scope() as s:
        nodes = (await s.execute(select(models.OutlineNode))).scalars().all()
    acts = {n.id for n in nodes if n.type == "act"}
    assert acts == {act_id(project_id, "db-a", "Book One"), act_id(project_id, "db-b", "Book One")}
    by_id = {n.id: n for n in nodes}
    assert by_id[f"{project_id}:outline:c2"].parent_id == act_id(project_id, "db-b", "Book One")
