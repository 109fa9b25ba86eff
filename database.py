"""
The memo store: a lazily opened SQLite handle and the repository over it.
"""

import asyncio
import logging
import os
import sqlite3
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import aiosqlite

import config
from errors import (
    PreconditionViolation,
    ReadDegraded,
    ReadResult,
    StorageUnavailable,
    WriteFailed,
    WriteResult,
)
from models import AppContext, Note, now_millis

logger = logging.getLogger(__name__)

H = TypeVar("H")

SQL_CREATE_TABLE = f"""
    CREATE TABLE IF NOT EXISTS {config.TABLE_NAME} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    content TEXT,
    created_date INTEGER NOT NULL,
    modified_date INTEGER NOT NULL
    )
"""

SELECT_COLUMNS = f"SELECT {', '.join(config.COLUMNS)} FROM {config.TABLE_NAME}"
NEWEST_FIRST = "ORDER BY modified_date DESC, id DESC"


class LazyHandle(Generic[H]):
    """
    Opens a resource once and hands the same instance to every caller.

    Concurrent first callers share a single open task, so they all get the
    same handle or the same HandleUnavailable. A failed open is forgotten
    and the next call tries again.
    """

    def __init__(
        self,
        opener: Callable[[AppContext], Awaitable[H]],
        name: str,
        closer: Optional[Callable[[H], Awaitable[None]]] = None,
    ):
        self._opener = opener
        self._closer = closer
        self.name = name
        self._handle: Optional[H] = None
        self._opening: Optional[asyncio.Future] = None

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    async def get(self, context: AppContext) -> H:
        if self._handle is not None:
            return self._handle

        if self._opening is None:
            logger.info("Opening %s...", self.name)
            self._opening = asyncio.ensure_future(self._opener(context))
        opening = self._opening

        try:
            # a cancelled waiter must not cancel the shared open
            handle = await asyncio.shield(opening)
        except Exception:
            if self._opening is opening:
                self._opening = None
            raise

        if self._handle is None:
            self._handle = handle
            self._opening = None
            logger.info("%s opened successfully.", self.name)
        return self._handle

    async def close(self) -> None:
        """
        Release the handle. Normally left to process teardown.
        """
        handle, self._handle = self._handle, None
        if handle is not None and self._closer is not None:
            await self._closer(handle)
            logger.info("%s closed.", self.name)


class StorageHandleProvider:
    """
    Owns the single connection to the memo database.
    Creates the schema the first time the store file is opened.
    """

    def __init__(
        self,
        store_name: str = config.STORE_NAME,
        security_level: config.SecurityLevel = config.STORE_SECURITY_LEVEL,
        version: int = config.STORE_VERSION,
    ):
        self.store_name = store_name
        self.security_level = security_level
        self.version = version
        self._lazy: LazyHandle[aiosqlite.Connection] = LazyHandle(
            self._open, f"memo store {store_name}", closer=lambda db: db.close()
        )

    async def get_handle(self, context: AppContext) -> aiosqlite.Connection:
        """
        Returns the open connection, opening it on first use.
        Raises StorageUnavailable if the store cannot be opened.
        """
        return await self._lazy.get(context)

    async def close(self) -> None:
        await self._lazy.close()

    async def on_create(self, db: aiosqlite.Connection) -> None:
        logger.info("Database creating...")
        await db.execute(SQL_CREATE_TABLE)
        logger.info("Table %s created.", config.TABLE_NAME)

    async def on_upgrade(self, db: aiosqlite.Connection, old_version: int, new_version: int) -> None:
        # no migrations yet; version 1 is the only schema
        logger.info("Database upgrading from %s to %s", old_version, new_version)

    async def _open(self, context: AppContext) -> aiosqlite.Connection:
        path = context.path_for(self.store_name)
        is_new = not path.exists()

        try:
            db = await aiosqlite.connect(path)
        except (sqlite3.Error, OSError) as e:
            logger.error("Get memo store failed: %s", e)
            raise StorageUnavailable(f"Failed to open memo store at {path}: {e}") from e

        try:
            if is_new:
                os.chmod(path, self.security_level.value)

            async with db.execute("PRAGMA user_version") as cursor:
                (current_version,) = await cursor.fetchone()

            if current_version == 0:
                await self.on_create(db)
            elif current_version < self.version:
                await self.on_upgrade(db, current_version, self.version)

            if current_version != self.version:
                # PRAGMA does not accept bound parameters
                await db.execute(f"PRAGMA user_version = {int(self.version)}")
            await db.commit()
        except (sqlite3.Error, OSError) as e:
            await db.close()
            logger.error("Initialising memo store failed: %s", e)
            raise StorageUnavailable(f"Failed to initialise memo store at {path}: {e}") from e

        return db


class NoteRepository:
    """
    CRUD access to memos in the SQLite store.

    Every operation takes the execution context explicitly. Store failures
    never escape: reads come back empty or None, writes report
    FAILURE_SENTINEL or a zero count. Only a failure to open the store is
    raised (StorageUnavailable).
    """

    def __init__(self, provider: Optional[StorageHandleProvider] = None):
        self.provider = provider or StorageHandleProvider()

    async def add(self, context: AppContext, note: Note) -> int:
        """
        Inserts a note, ignoring any id it carries.
        Returns the new row id, or FAILURE_SENTINEL.
        """
        db = await self.provider.get_handle(context)
        result = await self._write(
            db,
            f"INSERT INTO {config.TABLE_NAME} (title, content, created_date, modified_date) VALUES(?,?,?,?)",
            (note.title, note.content, note.created_date, note.modified_date),
            pick=lambda cursor: cursor.lastrowid,
            failed=config.FAILURE_SENTINEL,
            action="Insert memo",
        )
        if result.ok:
            logger.info("Memo inserted successfully, rowId = %s", result.value)
        return result.value

    async def query_all(self, context: AppContext) -> list[Note]:
        """
        Every note, most recently modified first.
        """
        db = await self.provider.get_handle(context)
        result = await self._fetch_all(db, f"{SELECT_COLUMNS} {NEWEST_FIRST}", ())
        if result.ok:
            logger.info("Queried %s memos.", len(result.value))
        return result.value

    async def query_by_title(self, context: AppContext, keyword: str) -> list[Note]:
        """
        Notes whose title contains keyword, most recently modified first.
        A blank keyword returns everything.
        """
        if not keyword or not keyword.strip():
            return await self.query_all(context)

        db = await self.provider.get_handle(context)
        result = await self._fetch_all(
            db,
            f"{SELECT_COLUMNS} WHERE title LIKE ? ESCAPE '\\' {NEWEST_FIRST}",
            (f"%{_escape_like(keyword)}%",),
        )
        if result.ok:
            logger.info('Queried %s memos matching keyword "%s".', len(result.value), keyword)
        return result.value

    async def query_by_id(self, context: AppContext, note_id: int) -> Optional[Note]:
        """
        The note with this id, or None.
        None also covers a failed query; callers treat both the same way.
        """
        db = await self.provider.get_handle(context)
        try:
            async with db.execute(f"{SELECT_COLUMNS} WHERE id = ?", (note_id,)) as cursor:
                row = await cursor.fetchone()
            result = ReadResult(self._row_to_note(row) if row is not None else None)
        except (sqlite3.Error, TypeError, ValueError) as e:
            result = ReadResult(None, ReadDegraded(f"Query memo by ID failed: {e}"))

        if not result.ok:
            logger.error("%s", result.error)
        elif result.value is None:
            logger.warning("Memo with ID %s not found.", note_id)
        return result.value

    async def update(self, context: AppContext, note: Note) -> int:
        """
        Overwrites title and content of an existing note and stamps its
        modified date with the current time. Returns rows affected.
        """
        if note.id is None:
            logger.error("%s", PreconditionViolation("Update failed: Memo ID is undefined."))
            return 0

        db = await self.provider.get_handle(context)
        result = await self._write(
            db,
            f"UPDATE {config.TABLE_NAME} SET title = ?, content = ?, modified_date = ? WHERE id = ?",
            (note.title, note.content, now_millis(), note.id),
            pick=lambda cursor: cursor.rowcount,
            failed=0,
            action="Update memo",
        )
        if result.ok:
            logger.info("Memo updated, affected rows = %s", result.value)
        return result.value

    async def delete(self, context: AppContext, note_id: int) -> int:
        """
        Removes the note with this id. Returns rows affected.
        """
        db = await self.provider.get_handle(context)
        result = await self._write(
            db,
            f"DELETE FROM {config.TABLE_NAME} WHERE id = ?",
            (note_id,),
            pick=lambda cursor: cursor.rowcount,
            failed=0,
            action="Delete memo",
        )
        if result.ok:
            logger.info("Memo deleted, affected rows = %s", result.value)
        return result.value

    async def count(self, context: AppContext) -> int:
        db = await self.provider.get_handle(context)
        try:
            async with db.execute(f"SELECT COUNT(*) FROM {config.TABLE_NAME}") as cursor:
                (total,) = await cursor.fetchone()
            result = ReadResult(int(total))
        except sqlite3.Error as e:
            result = ReadResult(0, ReadDegraded(f"Count memos failed: {e}"))

        if not result.ok:
            logger.error("%s", result.error)
        return result.value

    async def _fetch_all(self, db: aiosqlite.Connection, sql: str, params: tuple) -> ReadResult[list[Note]]:
        # the cursor context closes the result set on every exit path
        try:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
            result = ReadResult([self._row_to_note(row) for row in rows])
        except (sqlite3.Error, TypeError, ValueError) as e:
            result = ReadResult([], ReadDegraded(f"Query memos failed: {e}"))

        if not result.ok:
            logger.error("%s", result.error)
        return result

    async def _write(
        self,
        db: aiosqlite.Connection,
        sql: str,
        params: tuple,
        pick: Callable[[aiosqlite.Cursor], int],
        failed: int,
        action: str,
    ) -> WriteResult[int]:
        try:
            async with db.execute(sql, params) as cursor:
                value = pick(cursor)
            await db.commit()
        except sqlite3.Error as e:
            result = WriteResult(failed, WriteFailed(f"{action} failed: {e}"))
            logger.error("%s", result.error)
            return result
        return WriteResult(value)

    def _row_to_note(self, row) -> Note:
        """
        Converts a database row to a Note object.
        """
        row_id, title, content, created_date, modified_date = row
        return Note(
            id=int(row_id),
            title=title,
            content=content or "",
            created_date=int(created_date),
            modified_date=int(modified_date),
        )


def _escape_like(keyword: str) -> str:
    return keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
