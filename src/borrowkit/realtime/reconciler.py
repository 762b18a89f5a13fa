"""Folding realtime events into local collections.

Every screen that shows requests or loans keeps its own in-memory copies
and applies the same merge rules to each inbound event, whoever caused it:

- create, record in scope: insert at the front unless the id is present
- create, record out of scope: ignore
- update, record out of scope: remove
- update, record in scope: replace in place; insert only if the
  collection upserts
- delete: remove

A ``CollectionSpec`` says which table a collection follows and which
records belong in it. The rules themselves live only in
``RecordCollection.apply``.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Iterator, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ..logger import logger
from .channel import RealtimeAction, RealtimeEvent

T = TypeVar("T", bound=BaseModel)

Scope = Callable[[BaseModel], bool]


def everything(record: BaseModel) -> bool:
    return True


def status_in(*statuses: str) -> Scope:
    """Scope matching records whose ``status`` is one of ``statuses``."""
    wanted = frozenset(str(getattr(s, "value", s)) for s in statuses)

    def scope(record: BaseModel) -> bool:
        status = getattr(record, "status", None)
        return str(getattr(status, "value", status)) in wanted

    return scope


@dataclass(frozen=True)
class CollectionSpec(Generic[T]):
    """What a local collection tracks."""

    table: str
    model: type[T]
    scope: Scope = everything
    upsert_on_update: bool = False


class RecordCollection(Generic[T]):
    """Ordered records, unique by id, kept current by realtime events."""

    def __init__(self, spec: CollectionSpec[T]):
        self.spec = spec
        self._records: list[T] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._records))

    def __contains__(self, record_id: object) -> bool:
        return any(r.id == record_id for r in self._records)

    def get(self, record_id: str) -> Optional[T]:
        return next((r for r in self._records if r.id == record_id), None)

    @property
    def ids(self) -> list[str]:
        return [r.id for r in self._records]

    def replace_all(self, records: Iterable[T]) -> None:
        """Swap in a fresh snapshot, dropping duplicate ids."""
        seen: set[str] = set()
        fresh = []
        for record in records:
            if record.id not in seen:
                seen.add(record.id)
                fresh.append(record)
        self._records = fresh

    def insert(self, record: T) -> bool:
        """Prepend a record unless its id is already present."""
        if record.id in self:
            return False
        self._records.insert(0, record)
        return True

    def remove(self, record_id: str) -> bool:
        before = len(self._records)
        self._records = [r for r in self._records if r.id != record_id]
        return len(self._records) != before

    def replace(self, record: T) -> bool:
        """Replace the record with the same id in place."""
        for index, existing in enumerate(self._records):
            if existing.id == record.id:
                self._records[index] = record
                return True
        return False

    def apply(self, action: RealtimeAction, record: T) -> bool:
        """Apply one change. Returns True if the collection changed."""
        if action == RealtimeAction.DELETE:
            return self.remove(record.id)

        in_scope = self.spec.scope(record)
        if action == RealtimeAction.CREATE:
            return self.insert(record) if in_scope else False

        if not in_scope:
            return self.remove(record.id)
        if self.replace(record):
            return True
        return self.insert(record) if self.spec.upsert_on_update else False


class ObserverReconciler:
    """Routes events to the collections that follow their table."""

    def __init__(self, collections: Iterable[RecordCollection]):
        self.collections = list(collections)
        self._lock = threading.RLock()

    @property
    def tables(self) -> list[str]:
        return sorted({c.spec.table for c in self.collections})

    def handle(self, event: RealtimeEvent) -> bool:
        """Fold one event into every matching collection.

        Records that fail validation are skipped with a log line; the
        local state is then possibly stale until the next reload.
        """
        changed = False
        with self._lock:
            for collection in self.collections:
                if collection.spec.table != event.table:
                    continue
                if event.action == RealtimeAction.DELETE:
                    # Delete payloads may carry only the id.
                    record_id = event.record.get("id")
                    changed = bool(record_id and collection.remove(record_id)) or changed
                    continue
                try:
                    record = collection.spec.model.model_validate(event.record)
                except ValidationError as e:
                    logger.warning(
                        f"Dropping malformed {event.table} {event.action.value} event: {e}"
                    )
                    continue
                changed = collection.apply(event.action, record) or changed
        return changed

    @property
    def lock(self) -> threading.RLock:
        return self._lock
