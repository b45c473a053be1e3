"""Tests for the revisioned document store and event bus."""

from datetime import datetime, timezone

import pytest
from pydantic import Field

from ratebook.core.errors import ConcurrencyConflictError
from ratebook.core.events import DomainEvent, EventBus
from ratebook.core.store import DocumentStore
from ratebook.models.base import BaseModelConfig


class Note(BaseModelConfig):
    text: str
    revision: int = Field(default=1, ge=1)


def event(name: str) -> DomainEvent:
    return DomainEvent(
        name=name,
        actor="alice",
        occurred_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        subject_id="n1",
    )


class TestTransactions:
    """Test staged writes and atomic commit."""

    async def test_commit_assigns_revisions(self):
        """Inserts start at revision 1 and updates increment it."""
        store = DocumentStore()
        async with store.transaction() as tx:
            created = tx.put("notes", "n1", Note(text="draft"))
        assert created.revision == 1

        async with store.transaction() as tx:
            current = await tx.get("notes", "n1")
            updated = tx.put("notes", "n1", current.model_copy(update={"text": "final"}))

        assert updated.revision == 2
        assert (await store.get("notes", "n1")).text == "final"

    async def test_staged_writes_are_visible_inside_the_transaction(self):
        """Reads prefer the transaction's own writes."""
        store = DocumentStore()
        async with store.transaction() as tx:
            tx.put("notes", "n1", Note(text="draft"))
            assert (await tx.get("notes", "n1")).text == "draft"
            assert await store.get("notes", "n1") is None

    async def test_exception_discards_everything(self):
        """A failing block commits nothing and publishes nothing."""
        bus = EventBus()
        seen = []

        async def record(evt):
            seen.append(evt)

        bus.subscribe(record)
        store = DocumentStore(bus)

        with pytest.raises(RuntimeError):
            async with store.transaction() as tx:
                tx.put("notes", "n1", Note(text="draft"))
                tx.emit(event("note.created"))
                raise RuntimeError("boom")

        assert await store.get("notes", "n1") is None
        assert seen == []

    async def test_concurrent_update_is_rejected(self):
        """The second writer of the same revision loses."""
        store = DocumentStore()
        async with store.transaction() as tx:
            tx.put("notes", "n1", Note(text="draft"))

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            async with store.transaction() as slow:
                stale = await slow.get("notes", "n1")
                async with store.transaction() as fast:
                    fresh = await fast.get("notes", "n1")
                    fast.put("notes", "n1", fresh.model_copy(update={"text": "fast"}))
                slow.put("notes", "n1", stale.model_copy(update={"text": "slow"}))

        assert exc_info.value.code == "stale-revision"
        assert (await store.get("notes", "n1")).text == "fast"

    async def test_expected_revision_mismatch(self):
        """Writes pinned to another revision than the one read fail early."""
        store = DocumentStore()
        async with store.transaction() as tx:
            tx.put("notes", "n1", Note(text="draft"))

        async with store.transaction() as tx:
            current = await tx.get("notes", "n1")
            with pytest.raises(ConcurrencyConflictError):
                tx.put("notes", "n1", current, expected_revision=5)

    async def test_scan(self):
        """Scans filter committed records."""
        store = DocumentStore()
        async with store.transaction() as tx:
            tx.put("notes", "a", Note(text="keep"))
            tx.put("notes", "b", Note(text="drop"))

        kept = await store.scan("notes", lambda note: note.text == "keep")

        assert [note.text for note in kept] == ["keep"]
        assert len(await store.scan("notes")) == 2
        assert await store.scan("other") == []


class TestExclusive:
    """Test the in-flight guard."""

    async def test_second_holder_fails_fast(self):
        """Only one holder per key; the key is released afterwards."""
        store = DocumentStore()
        async with store.exclusive("change_set:1"):
            with pytest.raises(ConcurrencyConflictError) as exc_info:
                async with store.exclusive("change_set:1"):
                    pass
            async with store.exclusive("change_set:2"):
                pass
        assert exc_info.value.code == "transition-in-flight"

        async with store.exclusive("change_set:1"):
            pass


class TestEventBus:
    """Test post-commit event delivery."""

    async def test_events_follow_commit(self):
        """Events are delivered only after the commit, in emission order."""
        bus = EventBus()
        store = DocumentStore(bus)
        seen = []

        async def record(evt):
            seen.append((evt.name, await store.get("notes", "n1") is not None))

        bus.subscribe(record)
        async with store.transaction() as tx:
            tx.put("notes", "n1", Note(text="draft"))
            tx.emit(event("note.created"))
            tx.emit(event("note.indexed"))

        assert seen == [("note.created", True), ("note.indexed", True)]

    async def test_prefix_filter_and_failing_subscriber(self, caplog):
        """A failing subscriber is logged and does not stop delivery."""
        bus = EventBus()
        seen = []

        async def broken(evt):
            raise ValueError("search index down")

        async def versions_only(evt):
            seen.append(evt.name)

        bus.subscribe(broken)
        bus.subscribe(versions_only, prefix="version.")

        await bus.publish([event("version.created"), event("change_set.created")])

        assert seen == ["version.created"]
        assert "Event subscriber failed" in caplog.text
