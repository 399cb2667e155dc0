from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generator, List, Optional

from .context import CallContext
from .errors import ApplicationError, ConflictError, NotFoundError, StoreUnavailableError
from .models import NoteEntity, PrincipalEntity
from .repositories import (
    Clock,
    NoteRepository,
    PrincipalRepository,
    as_utc,
    utcnow,
    validate_body,
)
from . import tags as tag_utils

# progress handler granularity, in SQLite VM instructions
_PROGRESS_STEPS = 1000

# SQLite INTEGER keys are signed 64-bit
_ROWID_MIN = -(2**63)
_ROWID_MAX = 2**63 - 1


@dataclass(frozen=True)
class _NoteCols:
    table: str = "notes"
    id: str = "id"
    body: str = "body"
    tags: str = "tags"
    done: str = "done"
    created_at: str = "created_at"


@dataclass(frozen=True)
class _PrincipalCols:
    table: str = "principals"
    id: str = "id"
    external_auth_id: str = "external_auth_id"
    display_name: str = "display_name"


_N = _NoteCols()
_P = _PrincipalCols()


def _fits_rowid(value: int) -> bool:
    return _ROWID_MIN <= value <= _ROWID_MAX


def _format_ts(value: datetime) -> str:
    # fixed-width UTC ISO text so lexical order matches time order
    return as_utc(value).isoformat(timespec="microseconds")


def _casefold(value: Optional[str]) -> str:
    return value.casefold() if value else ""


def _tag_match(stored: Optional[str], needle: Optional[str]) -> int:
    if not needle:
        return 0
    return int(any(needle in t.casefold() for t in tag_utils.split_tags(stored)))


class SQLiteDatabase:
    """
    Connection factory and schema owner for the SQLite backing store.

    One short-lived connection per call; concurrency control is left to SQLite.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._init_db()

    @contextmanager
    def connect(self, ctx: Optional[CallContext] = None) -> Generator[sqlite3.Connection, None, None]:
        """
        Yield a connection that commits on success and rolls back on error.

        While a statement runs, SQLite polls ctx and interrupts the statement once
        the context is cancelled or past its deadline. Driver errors surface as
        StoreUnavailableError; ApplicationErrors raised inside the block pass through.
        """
        if ctx is not None:
            ctx.check()
        try:
            conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        except sqlite3.Error as e:
            raise StoreUnavailableError("could not open the note database", cause=e) from e
        conn.row_factory = sqlite3.Row
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        conn.create_function("tag_match", 2, _tag_match, deterministic=True)
        if ctx is not None:
            conn.set_progress_handler(lambda: 1 if ctx.should_abort() else 0, _PROGRESS_STEPS)
        try:
            yield conn
            conn.commit()
        except ApplicationError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            if ctx is not None and ctx.should_abort():
                ctx.check()
            raise StoreUnavailableError("note database error", cause=e) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self.connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_N.table} (
                    {_N.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_N.body} TEXT NOT NULL,
                    {_N.tags} TEXT NOT NULL DEFAULT '',
                    {_N.done} INTEGER NOT NULL DEFAULT 0,
                    {_N.created_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_N.table}_created_at ON {_N.table}({_N.created_at})"
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_P.table} (
                    {_P.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_P.external_auth_id} TEXT NOT NULL UNIQUE,
                    {_P.display_name} TEXT NOT NULL DEFAULT ''
                )
                """
            )


class SQLiteNoteRepository(NoteRepository):
    """
    SQLite note store. toggle_done is a single UPDATE, so concurrent toggles of the
    same id serialize inside SQLite.
    """

    def __init__(self, database: SQLiteDatabase, clock: Optional[Clock] = None) -> None:
        self._db = database
        self._clock: Callable[[], datetime] = clock or utcnow

    def _row_to_entity(self, row: sqlite3.Row) -> NoteEntity:
        return {
            "id": int(row[_N.id]),
            "body": str(row[_N.body]),
            "tags": tag_utils.split_tags(row[_N.tags]),
            "done": bool(row[_N.done]),
            "created_at": datetime.fromisoformat(row[_N.created_at]).astimezone(timezone.utc),
        }

    def add(self, ctx: CallContext, body: str, raw_tags: str = "") -> NoteEntity:
        text = validate_body(body)
        tags = tag_utils.join_tags(tag_utils.parse_tags(raw_tags))
        now = _format_ts(self._clock())
        with self._db.connect(ctx) as conn:
            cur = conn.execute(
                f"""
                INSERT INTO {_N.table} ({_N.body}, {_N.tags}, {_N.done}, {_N.created_at})
                VALUES (?, ?, 0, ?)
                """,
                (text, tags, now),
            )
            new_id = cur.lastrowid
            row = conn.execute(f"SELECT * FROM {_N.table} WHERE {_N.id} = ?", (new_id,)).fetchone()
            assert row is not None
            return self._row_to_entity(row)

    def get(self, ctx: CallContext, note_id: int) -> NoteEntity:
        if not _fits_rowid(note_id):
            ctx.check()
            raise NotFoundError("note", note_id)
        with self._db.connect(ctx) as conn:
            row = conn.execute(f"SELECT * FROM {_N.table} WHERE {_N.id} = ?", (note_id,)).fetchone()
        if row is None:
            raise NotFoundError("note", note_id)
        return self._row_to_entity(row)

    def get_all_since(self, ctx: CallContext, since: datetime) -> List[NoteEntity]:
        with self._db.connect(ctx) as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_N.table}
                WHERE {_N.created_at} >= ?
                ORDER BY {_N.created_at} DESC, {_N.id} ASC
                """,
                (_format_ts(since),),
            ).fetchall()
        return [self._row_to_entity(r) for r in rows]

    def search(self, ctx: CallContext, query: str) -> List[NoteEntity]:
        needle = (query or "").strip().casefold()
        if not needle:
            return []
        with self._db.connect(ctx) as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_N.table}
                WHERE instr(casefold({_N.body}), ?) > 0 OR tag_match({_N.tags}, ?)
                ORDER BY {_N.created_at} DESC, {_N.id} ASC
                """,
                (needle, needle),
            ).fetchall()
        return [self._row_to_entity(r) for r in rows]

    def toggle_done(self, ctx: CallContext, note_id: int) -> None:
        if not _fits_rowid(note_id):
            ctx.check()
            raise NotFoundError("note", note_id)
        with self._db.connect(ctx) as conn:
            cur = conn.execute(
                f"UPDATE {_N.table} SET {_N.done} = 1 - {_N.done} WHERE {_N.id} = ?", (note_id,)
            )
            if cur.rowcount == 0:
                raise NotFoundError("note", note_id)

    def delete(self, ctx: CallContext, note_id: int) -> None:
        if not _fits_rowid(note_id):
            ctx.check()
            raise NotFoundError("note", note_id)
        with self._db.connect(ctx) as conn:
            cur = conn.execute(f"DELETE FROM {_N.table} WHERE {_N.id} = ?", (note_id,))
            if cur.rowcount == 0:
                raise NotFoundError("note", note_id)


class SQLitePrincipalRepository(PrincipalRepository):
    """SQLite principal store; external_auth_id carries a UNIQUE constraint."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def _row_to_entity(self, row: sqlite3.Row) -> PrincipalEntity:
        return {
            "id": int(row[_P.id]),
            "external_auth_id": str(row[_P.external_auth_id]),
            "display_name": str(row[_P.display_name]),
        }

    def get(self, ctx: CallContext, principal_id: int) -> Optional[PrincipalEntity]:
        if not _fits_rowid(principal_id):
            ctx.check()
            return None
        with self._db.connect(ctx) as conn:
            row = conn.execute(
                f"SELECT * FROM {_P.table} WHERE {_P.id} = ?", (principal_id,)
            ).fetchone()
        return self._row_to_entity(row) if row else None

    def get_by_external_id(self, ctx: CallContext, external_auth_id: str) -> Optional[PrincipalEntity]:
        with self._db.connect(ctx) as conn:
            row = conn.execute(
                f"SELECT * FROM {_P.table} WHERE {_P.external_auth_id} = ?", (external_auth_id,)
            ).fetchone()
        return self._row_to_entity(row) if row else None

    def exists(self, ctx: CallContext, external_auth_id: str) -> bool:
        with self._db.connect(ctx) as conn:
            row = conn.execute(
                f"SELECT EXISTS(SELECT 1 FROM {_P.table} WHERE {_P.external_auth_id} = ?)",
                (external_auth_id,),
            ).fetchone()
        return bool(row[0])

    def add(self, ctx: CallContext, external_auth_id: str, display_name: str) -> PrincipalEntity:
        with self._db.connect(ctx) as conn:
            try:
                cur = conn.execute(
                    f"INSERT INTO {_P.table} ({_P.external_auth_id}, {_P.display_name}) VALUES (?, ?)",
                    (external_auth_id, display_name),
                )
            except sqlite3.IntegrityError as e:
                raise ConflictError("principal", "external_auth_id", external_auth_id) from e
            return {
                "id": int(cur.lastrowid),
                "external_auth_id": external_auth_id,
                "display_name": display_name,
            }
