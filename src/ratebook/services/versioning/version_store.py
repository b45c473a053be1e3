# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Version store for versioned configuration entities.

Each entity owns an append-only list of versions. Only ``draft`` versions
accept payload edits; all other changes are lifecycle transitions along
``draft -> review -> approved -> published`` (plus ``review -> draft`` and
``approved -> draft``). Publishing supersedes the previously published
version so at most one published version is effective at any instant.

The ``stage_*`` methods write into a caller-owned transaction so the change
set manager can move many versions in one atomic commit.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import uuid4

from beartype import beartype

from ...core.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from ...core.events import DomainEvent
from ...core.logging_utils import get_logger
from ...core.store import DocumentStore, Transaction
from ...models.base import AuditContext, ensure_utc
from ...models.versioning import (
    EntityHistory,
    EntityType,
    VersionDiff,
    VersionedEntity,
    VersionMetadata,
    VersionStatus,
    can_transition,
)
from .diff import diff_payloads
from .payloads import validate_payload

logger = get_logger(__name__)

VERSIONS = "versions"
ENTITIES = "entities"


def version_event(name: str, audit: AuditContext, version: VersionedEntity) -> DomainEvent:
    """Build a ``version.*`` event for a committed version change."""
    return DomainEvent(
        name=name,
        actor=audit.actor,
        occurred_at=audit.now,
        subject_id=version.version_id,
        data={
            "entity_type": version.entity_type.value,
            "entity_id": version.entity_id,
            "version_number": version.version_number,
            "status": version.status.value,
        },
    )


class VersionStore:
    """Lifecycle operations on versioned entities."""

    def __init__(
        self,
        store: DocumentStore,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize version store.

        Args:
            store: Document store holding versions and entity histories
            id_factory: Generator of new version ids
        """
        self._store = store
        self._new_id = id_factory or (lambda: str(uuid4()))

    @property
    def document_store(self) -> DocumentStore:
        """Underlying document store."""
        return self._store

    # Queries

    @beartype
    async def get_version(self, version_id: str) -> VersionedEntity:
        """Get a version by id.

        Raises:
            NotFoundError: Unknown version id
        """
        version = await self._store.get(VERSIONS, version_id)
        if version is None:
            raise NotFoundError(
                "version-not-found",
                f"Version {version_id} not found",
                {"version_id": version_id},
            )
        return version

    @beartype
    async def find_version(self, version_id: str) -> VersionedEntity | None:
        """Get a version by id, or None."""
        return await self._store.get(VERSIONS, version_id)

    @beartype
    async def list_versions(
        self,
        entity_type: EntityType,
        entity_id: str,
        *,
        status: VersionStatus | None = None,
    ) -> list[VersionedEntity]:
        """Full version history of an entity, newest first."""
        history = await self._store.get(
            ENTITIES, EntityHistory.key_for(entity_type, entity_id)
        )
        if history is None:
            return []
        versions = [await self.get_version(vid) for vid in reversed(history.version_ids)]
        if status is not None:
            versions = [v for v in versions if v.status == status]
        return versions

    @beartype
    async def latest_version(self, entity_type: EntityType, entity_id: str) -> VersionedEntity:
        """Most recently created version of an entity."""
        versions = await self.list_versions(entity_type, entity_id)
        if not versions:
            raise NotFoundError(
                "entity-not-found",
                f"{entity_type.value} {entity_id} has no versions",
                {"entity_type": entity_type.value, "entity_id": entity_id},
            )
        return versions[0]

    @beartype
    async def get_effective_version(
        self, entity_type: EntityType, entity_id: str, as_of: datetime
    ) -> VersionedEntity | None:
        """Published, non-retired version whose effective window contains ``as_of``."""
        as_of = ensure_utc(as_of)
        for version in await self.list_versions(
            entity_type, entity_id, status=VersionStatus.PUBLISHED
        ):
            if version.is_effective_at(as_of):
                return None if version.retired else version
        return None

    @beartype
    async def scan_versions(
        self,
        entity_type: EntityType,
        *,
        statuses: frozenset[VersionStatus] | None = None,
    ) -> list[VersionedEntity]:
        """All versions of a type, optionally restricted to some statuses."""
        return await self._store.scan(
            VERSIONS,
            lambda v: v.entity_type == entity_type
            and (statuses is None or v.status in statuses),
        )

    @beartype
    async def compare_versions(self, left_id: str, right_id: str) -> VersionDiff:
        """Field-level structural diff of two versions of the same entity."""
        left = await self.get_version(left_id)
        right = await self.get_version(right_id)
        if (left.entity_type, left.entity_id) != (right.entity_type, right.entity_id):
            raise ValidationError(
                "different-entities",
                f"Versions {left_id} and {right_id} belong to different entities",
                {"left": left_id, "right": right_id},
            )
        return VersionDiff(
            entity_type=left.entity_type,
            entity_id=left.entity_id,
            left=self._metadata(left),
            right=self._metadata(right),
            changes=diff_payloads(left.payload, right.payload),
        )

    # Mutations

    @beartype
    async def create_draft_version(
        self,
        entity_type: EntityType,
        entity_id: str,
        payload: dict[str, Any],
        audit: AuditContext,
        *,
        summary: str | None = None,
        effective_start: datetime | None = None,
        effective_end: datetime | None = None,
    ) -> VersionedEntity:
        """Create a new draft version; existing versions are never touched."""
        normalized = validate_payload(entity_type, payload)
        async with self._store.transaction() as tx:
            version = await self._stage_new_version(
                tx,
                entity_type,
                entity_id,
                normalized,
                audit,
                summary=summary,
                effective_start=effective_start,
                effective_end=effective_end,
            )
            tx.emit(version_event("version.created", audit, version))

        logger.info(
            "Created draft %s v%d of %s %s",
            version.version_id,
            version.version_number,
            entity_type.value,
            entity_id,
        )
        return version

    @beartype
    async def update_draft_version(
        self,
        version_id: str,
        payload: dict[str, Any],
        audit: AuditContext,
        *,
        expected_revision: int | None = None,
    ) -> VersionedEntity:
        """Replace the payload of a draft version.

        Raises:
            StateTransitionError: The version is not a draft
            ConcurrencyConflictError: ``expected_revision`` is stale
        """
        async with self._store.exclusive(f"version:{version_id}"):
            async with self._store.transaction() as tx:
                current = await self._load(tx, version_id)
                self._check_revision(current, expected_revision)
                if not current.is_editable:
                    logger.warning(
                        "Refused edit of %s version %s", current.status.value, version_id
                    )
                    raise StateTransitionError(
                        "version-not-draft",
                        f"Version {version_id} is {current.status.value}; only drafts are editable",
                        {"version_id": version_id, "status": current.status.value},
                    )
                normalized = validate_payload(current.entity_type, payload)
                updated = tx.put(
                    VERSIONS,
                    version_id,
                    current.model_copy(
                        update={
                            "payload": normalized,
                            "updated_at": audit.now,
                            "updated_by": audit.actor,
                        }
                    ),
                    expected_revision=current.revision,
                )
                tx.emit(version_event("version.updated", audit, updated))
        return updated

    @beartype
    async def clone_version(
        self,
        source_version_id: str,
        audit: AuditContext,
        *,
        summary: str | None = None,
    ) -> VersionedEntity:
        """Start a new draft seeded from any prior version's payload."""
        async with self._store.transaction() as tx:
            source = await self._load(tx, source_version_id)
            clone = await self._stage_new_version(
                tx,
                source.entity_type,
                source.entity_id,
                dict(source.payload),
                audit,
                summary=summary or f"Cloned from v{source.version_number}",
                cloned_from=source.version_id,
            )
            tx.emit(version_event("version.cloned", audit, clone))

        logger.info("Cloned version %s into draft %s", source_version_id, clone.version_id)
        return clone

    @beartype
    async def transition_version_status(
        self,
        version_id: str,
        new_status: VersionStatus,
        audit: AuditContext,
        *,
        notes: str | None = None,
        expected_revision: int | None = None,
    ) -> VersionedEntity:
        """Move a single version along the allowed lifecycle graph.

        Raises:
            StateTransitionError: The edge is not allowed
            ConcurrencyConflictError: ``expected_revision`` is stale or another
                transition of the same version is in flight
        """
        async with self._store.exclusive(f"version:{version_id}"):
            async with self._store.transaction() as tx:
                current = await self._load(tx, version_id)
                self._check_revision(current, expected_revision)
                if new_status == VersionStatus.PUBLISHED:
                    self._check_edge(current, new_status)
                    updated, _, _ = await self.stage_publish(tx, current, audit)
                else:
                    updated = self.stage_transition(tx, current, new_status, audit, notes=notes)
        return updated

    # Staging helpers shared with the change set manager

    def stage_transition(
        self,
        tx: Transaction,
        version: VersionedEntity,
        new_status: VersionStatus,
        audit: AuditContext,
        *,
        notes: str | None = None,
    ) -> VersionedEntity:
        """Stage one lifecycle edge (not publish) and queue its event."""
        self._check_edge(version, new_status)
        updates: dict[str, Any] = {
            "status": new_status,
            "updated_at": audit.now,
            "updated_by": audit.actor,
        }
        if notes is not None:
            updates["notes"] = notes
        updated = tx.put(
            VERSIONS,
            version.version_id,
            version.model_copy(update=updates),
            expected_revision=version.revision,
        )
        tx.emit(version_event("version.transitioned", audit, updated))
        logger.info(
            "Version %s %s -> %s by %s",
            version.version_id,
            version.status.value,
            new_status.value,
            audit.actor,
        )
        return updated

    async def stage_publish(
        self,
        tx: Transaction,
        version: VersionedEntity,
        audit: AuditContext,
        *,
        effective_start: datetime | None = None,
        retire: bool = False,
    ) -> tuple[VersionedEntity, list[str], list[str]]:
        """Stage ``approved -> published`` and supersede earlier published versions.

        A version lacking an effective start gets ``effective_start`` (or
        ``audit.now``). Earlier published versions that started before it have
        their window closed at that start; the rest are archived. With
        ``retire`` the new version is a tombstone and every earlier published
        version is archived.

        Returns:
            The published version, superseded version ids, archived version ids
        """
        self._check_edge(version, VersionStatus.PUBLISHED)
        start = version.effective_start or effective_start or audit.now
        if version.effective_end is not None and version.effective_end < start:
            raise ValidationError(
                "invalid-effective-window",
                f"Version {version.version_id} would end before it starts",
                {"version_id": version.version_id},
            )

        superseded: list[str] = []
        archived: list[str] = []
        history = await tx.get(
            ENTITIES, EntityHistory.key_for(version.entity_type, version.entity_id)
        )
        for prior_id in history.version_ids if history is not None else []:
            if prior_id == version.version_id:
                continue
            prior = await tx.get(VERSIONS, prior_id)
            if prior is None or prior.status != VersionStatus.PUBLISHED:
                continue

            if not retire and prior.effective_start is not None and prior.effective_start < start:
                if prior.effective_end is not None and prior.effective_end <= start:
                    continue
                closed = prior.model_copy(
                    update={
                        "effective_end": start,
                        "updated_at": audit.now,
                        "updated_by": audit.actor,
                    }
                )
                tx.put(VERSIONS, prior_id, closed, expected_revision=prior.revision)
                superseded.append(prior_id)
            else:
                retired_prior = prior.model_copy(
                    update={
                        "status": VersionStatus.ARCHIVED,
                        "updated_at": audit.now,
                        "updated_by": audit.actor,
                    }
                )
                tx.put(VERSIONS, prior_id, retired_prior, expected_revision=prior.revision)
                tx.emit(version_event("version.transitioned", audit, retired_prior))
                archived.append(prior_id)

        published = tx.put(
            VERSIONS,
            version.version_id,
            version.model_copy(
                update={
                    "status": VersionStatus.PUBLISHED,
                    "effective_start": start,
                    "retired": retire,
                    "published_at": audit.now,
                    "published_by": audit.actor,
                    "updated_at": audit.now,
                    "updated_by": audit.actor,
                }
            ),
            expected_revision=version.revision,
        )
        tx.emit(version_event("version.transitioned", audit, published))
        logger.info(
            "Published %s %s version %s effective %s (superseded=%s archived=%s)",
            version.entity_type.value,
            version.entity_id,
            version.version_id,
            start.isoformat(),
            superseded,
            archived,
        )
        return published, superseded, archived

    # Internals

    async def _stage_new_version(
        self,
        tx: Transaction,
        entity_type: EntityType,
        entity_id: str,
        payload: dict[str, Any],
        audit: AuditContext,
        *,
        summary: str | None = None,
        effective_start: datetime | None = None,
        effective_end: datetime | None = None,
        cloned_from: str | None = None,
    ) -> VersionedEntity:
        key = EntityHistory.key_for(entity_type, entity_id)
        history = await tx.get(ENTITIES, key)
        if history is None:
            history = EntityHistory(entity_type=entity_type, entity_id=entity_id)

        version_id = self._new_id()
        try:
            version = VersionedEntity(
                entity_type=entity_type,
                entity_id=entity_id,
                version_id=version_id,
                version_number=len(history.version_ids) + 1,
                status=VersionStatus.DRAFT,
                effective_start=effective_start,
                effective_end=effective_end,
                payload=payload,
                summary=summary,
                cloned_from=cloned_from,
                created_at=audit.now,
                created_by=audit.actor,
                updated_at=audit.now,
                updated_by=audit.actor,
            )
        except ValueError as exc:
            raise ValidationError(
                "invalid-version", str(exc), {"entity_id": entity_id}
            ) from exc

        version = tx.put(VERSIONS, version_id, version)
        tx.put(
            ENTITIES,
            key,
            history.model_copy(update={"version_ids": [*history.version_ids, version_id]}),
        )
        return version

    @staticmethod
    async def _load(tx: Transaction, version_id: str) -> VersionedEntity:
        version = await tx.get(VERSIONS, version_id)
        if version is None:
            raise NotFoundError(
                "version-not-found",
                f"Version {version_id} not found",
                {"version_id": version_id},
            )
        return version

    @staticmethod
    def _check_edge(version: VersionedEntity, new_status: VersionStatus) -> None:
        if not can_transition(version.status, new_status):
            logger.warning(
                "Refused transition of %s: %s -> %s",
                version.version_id,
                version.status.value,
                new_status.value,
            )
            raise StateTransitionError(
                "illegal-transition",
                f"Version {version.version_id} cannot move from "
                f"{version.status.value} to {new_status.value}",
                {
                    "version_id": version.version_id,
                    "from": version.status.value,
                    "to": new_status.value,
                },
            )

    @staticmethod
    def _check_revision(version: VersionedEntity, expected_revision: int | None) -> None:
        if expected_revision is not None and version.revision != expected_revision:
            raise ConcurrencyConflictError(
                "stale-revision",
                f"Version {version.version_id} is at revision {version.revision}, "
                f"caller expected {expected_revision}",
                {"version_id": version.version_id, "revision": version.revision},
            )

    @staticmethod
    def _metadata(version: VersionedEntity) -> VersionMetadata:
        return VersionMetadata(
            version_id=version.version_id,
            version_number=version.version_number,
            status=version.status,
            summary=version.summary,
            effective_start=version.effective_start,
            effective_end=version.effective_end,
            created_at=version.created_at,
            created_by=version.created_by,
        )
