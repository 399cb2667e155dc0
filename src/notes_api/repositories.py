from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, List, Optional, Tuple

from .context import CallContext
from .errors import ConflictError, NotFoundError, ValidationError
from .models import NoteEntity, PrincipalEntity
from .settings import Settings
from . import tags as tag_utils

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_body(body: Optional[str]) -> str:
    if body is None or not body.strip():
        raise ValidationError("note body must not be empty", field="body")
    return body


def feed_order(note: NoteEntity) -> Tuple[float, int]:
    """Sort key: newest first, ties broken by ascending id."""
    return (-note["created_at"].timestamp(), note["id"])


# PUBLIC_INTERFACE
class NoteRepository(ABC):
    """Abstract contract for note storage backends. Every call takes a CallContext first."""

    @abstractmethod
    def add(self, ctx: CallContext, body: str, raw_tags: str = "") -> NoteEntity:
        """Create a note (done=False, created_at=now). ValidationError on an empty body."""

    @abstractmethod
    def get(self, ctx: CallContext, note_id: int) -> NoteEntity:
        """Return a note by id. NotFoundError if absent."""

    @abstractmethod
    def get_all_since(self, ctx: CallContext, since: datetime) -> List[NoteEntity]:
        """Return notes with created_at >= since, newest first, ties by ascending id."""

    @abstractmethod
    def search(self, ctx: CallContext, query: str) -> List[NoteEntity]:
        """
        Return notes whose body or any tag contains query (case-insensitive).
        An empty or blank query returns an empty list. Same ordering as get_all_since.
        """

    @abstractmethod
    def toggle_done(self, ctx: CallContext, note_id: int) -> None:
        """Atomically flip the done flag. NotFoundError if absent."""

    @abstractmethod
    def delete(self, ctx: CallContext, note_id: int) -> None:
        """Permanently remove a note. NotFoundError if absent (including a second delete)."""


# PUBLIC_INTERFACE
class PrincipalRepository(ABC):
    """Abstract contract for principal (user) storage backends."""

    @abstractmethod
    def get(self, ctx: CallContext, principal_id: int) -> Optional[PrincipalEntity]:
        """Return the principal with this internal id, or None."""

    @abstractmethod
    def get_by_external_id(self, ctx: CallContext, external_auth_id: str) -> Optional[PrincipalEntity]:
        """Return the principal issued this identity-provider id, or None."""

    @abstractmethod
    def exists(self, ctx: CallContext, external_auth_id: str) -> bool:
        """True if a principal with this identity-provider id exists."""

    @abstractmethod
    def add(self, ctx: CallContext, external_auth_id: str, display_name: str) -> PrincipalEntity:
        """Insert a principal. ConflictError if the external id is already registered."""

    def register(self, ctx: CallContext, external_auth_id: str, display_name: str) -> PrincipalEntity:
        """
        Return the principal for external_auth_id, creating it on first login.

        exists() and add() are separate calls; a concurrent registration that wins
        the race shows up as ConflictError from add() and is treated as success.
        """
        if not self.exists(ctx, external_auth_id):
            try:
                return self.add(ctx, external_auth_id, display_name)
            except ConflictError:
                pass
        principal = self.get_by_external_id(ctx, external_auth_id)
        if principal is None:
            raise NotFoundError("principal", external_auth_id)
        return principal


class InMemoryNoteRepository(NoteRepository):
    """
    Thread-safe in-memory note store suitable for testing and default runtime.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._lock = RLock()
        self._items: Dict[int, NoteEntity] = {}
        self._next_id = 1
        self._clock = clock or utcnow

    def _copy(self, note: NoteEntity) -> NoteEntity:
        copied = note.copy()
        copied["tags"] = list(note["tags"])
        return copied

    def add(self, ctx: CallContext, body: str, raw_tags: str = "") -> NoteEntity:
        ctx.check()
        text = validate_body(body)
        with self._lock:
            entity: NoteEntity = {
                "id": self._next_id,
                "body": text,
                "tags": tag_utils.parse_tags(raw_tags),
                "done": False,
                "created_at": as_utc(self._clock()),
            }
            self._next_id += 1
            self._items[entity["id"]] = entity
            return self._copy(entity)

    def get(self, ctx: CallContext, note_id: int) -> NoteEntity:
        ctx.check()
        with self._lock:
            item = self._items.get(note_id)
            if item is None:
                raise NotFoundError("note", note_id)
            return self._copy(item)

    def get_all_since(self, ctx: CallContext, since: datetime) -> List[NoteEntity]:
        ctx.check()
        lower = as_utc(since)
        with self._lock:
            items = [self._copy(n) for n in self._items.values() if n["created_at"] >= lower]
        return sorted(items, key=feed_order)

    def search(self, ctx: CallContext, query: str) -> List[NoteEntity]:
        ctx.check()
        needle = (query or "").strip().casefold()
        if not needle:
            return []
        with self._lock:
            items = [
                self._copy(n) for n in self._items.values()
                if tag_utils.matches(n["body"], n["tags"], needle)
            ]
        return sorted(items, key=feed_order)

    def toggle_done(self, ctx: CallContext, note_id: int) -> None:
        ctx.check()
        with self._lock:
            item = self._items.get(note_id)
            if item is None:
                raise NotFoundError("note", note_id)
            item["done"] = not item["done"]

    def delete(self, ctx: CallContext, note_id: int) -> None:
        ctx.check()
        with self._lock:
            if self._items.pop(note_id, None) is None:
                raise NotFoundError("note", note_id)


class InMemoryPrincipalRepository(PrincipalRepository):
    """Thread-safe in-memory principal store."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[int, PrincipalEntity] = {}
        self._next_id = 1

    def get(self, ctx: CallContext, principal_id: int) -> Optional[PrincipalEntity]:
        ctx.check()
        with self._lock:
            item = self._items.get(principal_id)
            return None if item is None else item.copy()

    def get_by_external_id(self, ctx: CallContext, external_auth_id: str) -> Optional[PrincipalEntity]:
        ctx.check()
        with self._lock:
            for item in self._items.values():
                if item["external_auth_id"] == external_auth_id:
                    return item.copy()
        return None

    def exists(self, ctx: CallContext, external_auth_id: str) -> bool:
        return self.get_by_external_id(ctx, external_auth_id) is not None

    def add(self, ctx: CallContext, external_auth_id: str, display_name: str) -> PrincipalEntity:
        ctx.check()
        with self._lock:
            if any(p["external_auth_id"] == external_auth_id for p in self._items.values()):
                raise ConflictError("principal", "external_auth_id", external_auth_id)
            entity: PrincipalEntity = {
                "id": self._next_id,
                "external_auth_id": external_auth_id,
                "display_name": display_name,
            }
            self._next_id += 1
            self._items[entity["id"]] = entity
            return entity.copy()


# PUBLIC_INTERFACE
def build_repositories(settings: Settings) -> Tuple[NoteRepository, PrincipalRepository]:
    """
    Return the configured (note store, principal store) pair.
    - memory: in-memory stores
    - sqlite: SQLite stores sharing settings.sqlite_db_path
    """
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteDatabase, SQLiteNoteRepository, SQLitePrincipalRepository

        database = SQLiteDatabase(settings.sqlite_db_path, timeout=settings.store_timeout)
        return SQLiteNoteRepository(database), SQLitePrincipalRepository(database)
    return InMemoryNoteRepository(), InMemoryPrincipalRepository()
