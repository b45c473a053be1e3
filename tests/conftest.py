"""Test configuration and fixtures.

Every service runs against a fresh in-memory document store; audit contexts
use fixed timestamps so effective dating is reproducible.
"""

from collections.abc import Awaitable, Callable, Generator
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from ratebook.core.config import Settings, clear_settings_cache
from ratebook.core.events import DomainEvent, EventBus
from ratebook.core.store import DocumentStore
from ratebook.models.base import AuditContext
from ratebook.models.change_set import ChangeSet, ItemAction
from ratebook.models.rating import FactorStep, OperandStep, RoundingMode, RoundingRule
from ratebook.models.versioning import EntityType, VersionedEntity
from ratebook.services.change_sets import ChangeSetManager
from ratebook.services.rating import RatingEngine
from ratebook.services.versioning import VersionStore

JAN_15 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Isolate tests from each other's cached settings."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Default settings: product_manager and compliance must approve."""
    return Settings()


@pytest.fixture
def audit() -> AuditContext:
    """Audit context of a product manager acting on 2025-01-15."""
    return AuditContext(actor="alice", now=JAN_15)


@pytest.fixture
def audit_at() -> Callable[..., AuditContext]:
    """Build audit contexts for other instants or actors."""

    def _build(now: datetime, actor: str = "alice") -> AuditContext:
        return AuditContext(actor=actor, now=now)

    return _build


@pytest.fixture
def events() -> list[DomainEvent]:
    """Events delivered by the store's bus, in order."""
    return []


@pytest.fixture
def store(events: list[DomainEvent]) -> DocumentStore:
    """Fresh document store whose bus records every event."""
    bus = EventBus()

    async def record(event: DomainEvent) -> None:
        events.append(event)

    bus.subscribe(record)
    return DocumentStore(bus)


@pytest.fixture
def versions(store: DocumentStore) -> VersionStore:
    """Version store over the fresh document store."""
    return VersionStore(store)


@pytest.fixture
def manager(versions: VersionStore, settings: Settings) -> ChangeSetManager:
    """Change set manager sharing the version store."""
    return ChangeSetManager(versions, settings=settings)


@pytest.fixture
def engine() -> RatingEngine:
    """Rating engine rounding premiums to the nearest dollar."""
    return RatingEngine(final_rounding=RoundingRule(mode=RoundingMode.NEAREST, precision=0))


def factor(order: int, name: str, value: Any = None, **fields: Any) -> FactorStep:
    """Factor step with a literal value unless another source is given."""
    if value is not None:
        fields["value"] = Decimal(str(value))
    return FactorStep(order=order, name=name, **fields)


def operand(order: int, symbol: str) -> OperandStep:
    """Operand step for ``*``, ``+``, ``-``, ``/`` or ``=``."""
    return OperandStep(order=order, operand=symbol)


def chain(*parts: Any) -> list[FactorStep | OperandStep]:
    """Number alternating factor specs and operand symbols in sequence.

    Factor specs are ``(name, value)`` tuples or ready-made FactorSteps.
    """
    steps: list[FactorStep | OperandStep] = []
    for order, part in enumerate(parts):
        if isinstance(part, str):
            steps.append(operand(order, part))
        elif isinstance(part, FactorStep):
            steps.append(part.model_copy(update={"order": order}))
        else:
            name, value = part
            steps.append(factor(order, name, value))
    return steps


def territory_table_payload(cells: dict[str, str] | None = None) -> dict[str, Any]:
    """Table keyed by state code."""
    return {
        "name": "Territory",
        "dimensions": [
            {"kind": "discrete", "name": "state", "field": "stateCode", "values": ["CA", "TX"]}
        ],
        "cells": cells if cells is not None else {"CA": "1.10", "TX": "0.95"},
    }


def rate_program_payload(table_id: str = "territory") -> dict[str, Any]:
    """Base rate times a state territory factor."""
    return {
        "name": "Businessowners",
        "steps": [
            {"step_type": "factor", "order": 0, "name": "BaseRate", "value": "100"},
            {"step_type": "operand", "order": 1, "operand": "*"},
            {"step_type": "factor", "order": 2, "name": "Territory", "table": table_id},
        ],
        "final_rounding": {"mode": "nearest", "precision": 2},
    }


@pytest.fixture
def draft(
    versions: VersionStore, audit: AuditContext
) -> Callable[..., Awaitable[VersionedEntity]]:
    """Create a draft version of an entity."""

    async def _create(
        entity_type: EntityType, entity_id: str, payload: dict[str, Any], **kwargs: Any
    ) -> VersionedEntity:
        return await versions.create_draft_version(
            entity_type, entity_id, payload, audit, **kwargs
        )

    return _create


@pytest.fixture
def approved_change_set(
    manager: ChangeSetManager, audit: AuditContext
) -> Callable[..., Awaitable[ChangeSet]]:
    """Put versions in a change set and drive it through every approval."""

    async def _approve(
        *version_ids: str,
        actions: dict[str, ItemAction] | None = None,
        target_effective_start: datetime | None = None,
    ) -> ChangeSet:
        actions = actions or {}
        change_set = await manager.create_change_set(
            "Quarterly filing", audit, target_effective_start=target_effective_start
        )
        for version_id in version_ids:
            await manager.add_item(
                change_set.id, actions.get(version_id, ItemAction.UPDATE), version_id, audit
            )
        change_set = await manager.submit_for_review(change_set.id, audit)
        for role in change_set.required_roles:
            change_set = await manager.approve(change_set.id, role, audit)
        return change_set

    return _approve


@pytest.fixture
def publish_versions(
    manager: ChangeSetManager,
    audit: AuditContext,
    approved_change_set: Callable[..., Awaitable[ChangeSet]],
) -> Callable[..., Awaitable[ChangeSet]]:
    """Approve and publish versions in a single change set."""

    async def _publish(*version_ids: str, **kwargs: Any) -> ChangeSet:
        change_set = await approved_change_set(*version_ids, **kwargs)
        await manager.publish(change_set.id, audit)
        return await manager.get_change_set(change_set.id)

    return _publish
