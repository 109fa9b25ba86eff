import asyncio
import os

import aiosqlite
import pytest

import config
from database import NoteRepository, StorageHandleProvider
from errors import StorageUnavailable
from models import AppContext, Note


async def drop_table(provider, context):
    db = await provider.get_handle(context)
    await db.execute(f"DROP TABLE {config.TABLE_NAME}")
    await db.commit()


# --- StorageHandleProvider ---


async def test_handle_is_memoized(provider, context):
    first = await provider.get_handle(context)
    second = await provider.get_handle(context)
    assert first is second


async def test_new_store_gets_schema_and_version(provider, context):
    db = await provider.get_handle(context)
    async with db.execute("SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", ("memo",)) as cursor:
        assert await cursor.fetchone() is not None
    async with db.execute("PRAGMA user_version") as cursor:
        assert (await cursor.fetchone())[0] == config.STORE_VERSION


async def test_new_store_file_is_owner_only(provider, context):
    await provider.get_handle(context)
    mode = os.stat(context.path_for(config.STORE_NAME)).st_mode & 0o777
    assert mode == config.SecurityLevel.S1.value


async def test_concurrent_first_access_opens_once(provider, context, monkeypatch):
    calls = []
    real_connect = aiosqlite.connect

    def counting_connect(*args, **kwargs):
        calls.append(args)
        return real_connect(*args, **kwargs)

    monkeypatch.setattr(aiosqlite, "connect", counting_connect)

    handles = await asyncio.gather(*(provider.get_handle(context) for _ in range(5)))

    assert len(calls) == 1
    assert all(handle is handles[0] for handle in handles)


async def test_open_failure_is_shared_and_raised(tmp_path):
    provider = StorageHandleProvider()
    context = AppContext(data_dir=tmp_path / "missing" / "dir")

    results = await asyncio.gather(
        provider.get_handle(context), provider.get_handle(context), return_exceptions=True
    )

    assert isinstance(results[0], StorageUnavailable)
    assert results[0] is results[1]
    assert results[0].__cause__ is not None


async def test_open_failure_propagates_through_repository(tmp_path):
    repo = NoteRepository(StorageHandleProvider())
    context = AppContext(data_dir=tmp_path / "missing")

    with pytest.raises(StorageUnavailable):
        await repo.query_all(context)


async def test_open_is_retried_after_failure(tmp_path):
    provider = StorageHandleProvider()
    context = AppContext(data_dir=tmp_path / "later")

    with pytest.raises(StorageUnavailable):
        await provider.get_handle(context)

    context.data_dir.mkdir()
    try:
        assert await provider.get_handle(context) is not None
    finally:
        await provider.close()


async def test_reopening_existing_store_keeps_notes(context):
    first = StorageHandleProvider()
    note_id = await NoteRepository(first).add(context, Note.new("Kept", "across opens"))
    await first.close()

    second = StorageHandleProvider()
    try:
        note = await NoteRepository(second).query_by_id(context, note_id)
    finally:
        await second.close()

    assert note is not None
    assert note.title == "Kept"


async def test_older_store_runs_upgrade_hook(context):
    first = StorageHandleProvider()
    await first.get_handle(context)
    await first.close()

    upgrades = []

    class NewerProvider(StorageHandleProvider):
        async def on_upgrade(self, db, old_version, new_version):
            upgrades.append((old_version, new_version))

    newer = NewerProvider(version=2)
    try:
        db = await newer.get_handle(context)
        async with db.execute("PRAGMA user_version") as cursor:
            assert (await cursor.fetchone())[0] == 2
    finally:
        await newer.close()

    assert upgrades == [(1, 2)]


# --- NoteRepository ---


async def test_add_then_query_by_id(repo, context):
    note_id = await repo.add(context, Note.new("Groceries", "milk, eggs"))

    note = await repo.query_by_id(context, note_id)

    assert note_id > 0
    assert note.id == note_id
    assert note.title == "Groceries"
    assert note.content == "milk, eggs"
    assert note.created_date == note.modified_date


async def test_add_ignores_caller_id(repo, context):
    note = Note(title="Mine", content="", created_date=5, modified_date=5, id=999)

    note_id = await repo.add(context, note)

    assert note_id != 999
    assert await repo.query_by_id(context, 999) is None


async def test_empty_content_round_trips(repo, context):
    note_id = await repo.add(context, Note.new("Title only", ""))
    assert (await repo.query_by_id(context, note_id)).content == ""


async def test_query_by_id_not_found(repo, context):
    assert await repo.query_by_id(context, 42) is None


async def test_update_stamps_modified_date(repo, context):
    note_id = await repo.add(context, Note(title="Old", content="old", created_date=1000, modified_date=1000))
    stored = await repo.query_by_id(context, note_id)

    # the modified date carried by the argument is ignored
    affected = await repo.update(context, Note(title="New", content="new", created_date=1000, modified_date=1, id=note_id))

    updated = await repo.query_by_id(context, note_id)
    assert affected == 1
    assert updated.id == stored.id
    assert updated.title == "New"
    assert updated.content == "new"
    assert updated.created_date == 1000
    assert updated.modified_date >= stored.modified_date
    assert updated.modified_date > 1


async def test_update_without_id_returns_zero(repo, context, caplog):
    affected = await repo.update(context, Note.new("No id", "x"))

    assert affected == 0
    assert "Memo ID is undefined" in caplog.text


async def test_update_missing_row_returns_zero(repo, context):
    assert await repo.update(context, Note(title="Ghost", content="", created_date=1, modified_date=1, id=77)) == 0


async def test_delete(repo, context):
    note_id = await repo.add(context, Note.new("Temp", ""))

    assert await repo.delete(context, note_id) == 1
    assert await repo.query_by_id(context, note_id) is None


async def test_delete_missing_id_leaves_store_unchanged(repo, context):
    await repo.add(context, Note.new("Stays", ""))
    before = await repo.query_all(context)

    assert await repo.delete(context, 12345) == 0
    assert await repo.query_all(context) == before


async def test_query_all_newest_first_without_loss(repo, context):
    stamps = [3000, 1000, 2000, 2000, 5000]
    ids = []
    for i, stamp in enumerate(stamps):
        ids.append(await repo.add(context, Note(title=f"n{i}", content="", created_date=stamp, modified_date=stamp)))

    notes = await repo.query_all(context)

    assert len(notes) == len(stamps)
    assert sorted(note.id for note in notes) == sorted(ids)
    assert [note.modified_date for note in notes] == [5000, 3000, 2000, 2000, 1000]
    # equal dates: higher id first
    assert notes[2].id > notes[3].id
    assert await repo.count(context) == len(stamps)


async def test_blank_keyword_matches_query_all(repo, context):
    for title in ("One", "Two"):
        await repo.add(context, Note.new(title, ""))

    everything = await repo.query_all(context)

    assert await repo.query_by_title(context, "") == everything
    assert await repo.query_by_title(context, "   ") == everything


async def test_query_by_title_substring(repo, context):
    for title in ("Alpha", "Beta", "Alphabet"):
        await repo.add(context, Note.new(title, ""))

    notes = await repo.query_by_title(context, "Alpha")

    assert {note.title for note in notes} == {"Alpha", "Alphabet"}
    dates = [note.modified_date for note in notes]
    assert dates == sorted(dates, reverse=True)


async def test_query_by_title_ignores_ascii_case(repo, context):
    for title in ("Alpha", "ALPHABET", "Beta"):
        await repo.add(context, Note.new(title, ""))

    notes = await repo.query_by_title(context, "alpha")

    assert {note.title for note in notes} == {"Alpha", "ALPHABET"}


async def test_query_by_title_matches_wildcards_literally(repo, context):
    for title in ("100% done", "1000 things", "a_b", "axb"):
        await repo.add(context, Note.new(title, ""))

    assert [n.title for n in await repo.query_by_title(context, "0%")] == ["100% done"]
    assert [n.title for n in await repo.query_by_title(context, "a_b")] == ["a_b"]


async def test_reads_degrade_when_query_fails(repo, provider, context, caplog):
    await repo.add(context, Note.new("Lost", ""))
    await drop_table(provider, context)

    assert await repo.query_all(context) == []
    assert await repo.query_by_title(context, "Lost") == []
    assert await repo.query_by_id(context, 1) is None
    assert await repo.count(context) == 0
    assert "no such table" in caplog.text


async def test_writes_report_failure_when_store_rejects(repo, provider, context):
    await drop_table(provider, context)

    assert await repo.add(context, Note.new("Nowhere", "")) == config.FAILURE_SENTINEL
    assert await repo.update(context, Note(title="x", content="", created_date=1, modified_date=1, id=1)) == 0
    assert await repo.delete(context, 1) == 0
