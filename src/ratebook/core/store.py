# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Revisioned document store with an atomic commit boundary.

Records are immutable pydantic models carrying a ``revision`` etag. Writes are
staged on a :class:`Transaction` and applied together on commit after every
revision the transaction read or wrote has been re-checked; a stale revision
aborts the whole commit with :class:`ConcurrencyConflictError`.

Example:
    ```python
    async with store.transaction() as tx:
        version = await tx.get("versions", version_id)
        tx.put("versions", version_id, version.model_copy(update={...}))
        tx.emit(event)
    ```
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from beartype import beartype
from pydantic import BaseModel

from .errors import ConcurrencyConflictError
from .events import DomainEvent, EventBus
from .logging_utils import get_logger

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)
_Key = tuple[str, str]


class Transaction:
    """Unit of work staged against a :class:`DocumentStore`."""

    def __init__(self, store: "DocumentStore") -> None:
        """Initialize an empty unit of work."""
        self._store = store
        self._base_revisions: dict[_Key, int] = {}
        self._writes: dict[_Key, BaseModel] = {}
        self._events: list[DomainEvent] = []

    @beartype
    async def get(self, collection: str, key: str) -> Any | None:
        """Read a record, preferring this transaction's staged write."""
        staged = self._writes.get((collection, key))
        if staged is not None:
            return staged
        record = self._store._peek(collection, key)
        self._base_revisions.setdefault(
            (collection, key), 0 if record is None else record.revision
        )
        return record

    @beartype
    def put(
        self,
        collection: str,
        key: str,
        record: BaseModel,
        *,
        expected_revision: int | None = None,
    ) -> BaseModel:
        """Stage a write and return the record with its new revision.

        ``expected_revision`` pins the caller's view of the record; omit it to
        use the revision this transaction read (or 0 for an insert).
        """
        slot = (collection, key)
        if expected_revision is not None:
            known = self._base_revisions.get(slot)
            if known is not None and known != expected_revision:
                raise ConcurrencyConflictError(
                    "stale-revision",
                    f"{collection}/{key} is at revision {known}, "
                    f"caller expected {expected_revision}",
                    {"collection": collection, "key": key},
                )
            self._base_revisions[slot] = expected_revision
        elif slot not in self._base_revisions:
            current = self._store._peek(collection, key)
            self._base_revisions[slot] = 0 if current is None else current.revision

        new_record = record.model_copy(
            update={"revision": self._base_revisions[slot] + 1}
        )
        self._writes[slot] = new_record
        return new_record

    @beartype
    def emit(self, event: DomainEvent) -> None:
        """Queue an event for delivery after a successful commit."""
        self._events.append(event)

    async def _commit(self) -> list[DomainEvent]:
        await self._store._apply(self._base_revisions, self._writes)
        return list(self._events)


class DocumentStore:
    """In-memory collections of revisioned records."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        """Initialize empty collections."""
        self._collections: dict[str, dict[str, BaseModel]] = {}
        self._commit_lock = asyncio.Lock()
        self._in_flight: set[str] = set()
        self.event_bus = event_bus or EventBus()

    @beartype
    async def get(self, collection: str, key: str) -> Any | None:
        """Read the committed record, or None."""
        return self._peek(collection, key)

    @beartype
    async def scan(
        self,
        collection: str,
        predicate: Callable[[Any], bool] | None = None,
    ) -> list[Any]:
        """Return committed records of a collection, optionally filtered."""
        records = list(self._collections.get(collection, {}).values())
        if predicate is None:
            return records
        return [record for record in records if predicate(record)]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Stage writes and commit them atomically when the block exits cleanly.

        An exception inside the block discards every staged write and event.
        """
        tx = Transaction(self)
        yield tx
        events = await tx._commit()
        if events:
            await self.event_bus.publish(events)

    @asynccontextmanager
    async def exclusive(self, key: str) -> AsyncIterator[None]:
        """Allow one in-flight transition per key; a second one fails fast."""
        if key in self._in_flight:
            raise ConcurrencyConflictError(
                "transition-in-flight",
                f"Another transition on {key} is in progress",
                {"key": key},
            )
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    def _peek(self, collection: str, key: str) -> Any | None:
        return self._collections.get(collection, {}).get(key)

    async def _apply(
        self,
        base_revisions: dict[_Key, int],
        writes: dict[_Key, BaseModel],
    ) -> None:
        async with self._commit_lock:
            for (collection, key), expected in base_revisions.items():
                current = self._peek(collection, key)
                actual = 0 if current is None else current.revision
                if actual != expected:
                    logger.warning(
                        "Commit rejected: %s/%s at revision %s, expected %s",
                        collection,
                        key,
                        actual,
                        expected,
                    )
                    raise ConcurrencyConflictError(
                        "stale-revision",
                        f"{collection}/{key} changed concurrently "
                        f"(revision {actual}, expected {expected})",
                        {"collection": collection, "key": key},
                    )
            staged = {
                collection: dict(self._collections.get(collection, {}))
                for collection, _ in writes
            }
            for (collection, key), record in writes.items():
                staged[collection][key] = record
            self._collections.update(staged)
