# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Change set manager.

Drives batches of entity-version changes through
``draft -> in_review -> approved -> published``. ``in_review`` may also go
back to ``draft`` (returned with a reason) or end in ``rejected``; a rejected
change set can be cloned into a new draft.

Every transition that touches several records (submit, return, approve,
reject, publish) stages all of its writes in one transaction: either every
version and the change set move, or nothing does. Only one transition per
change set may be in flight at a time.
"""

from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any
from uuid import uuid4

from beartype import beartype

from ...core.config import Settings, get_settings
from ...core.errors import (
    NotFoundError,
    PreflightBlockedError,
    StateTransitionError,
    ValidationError,
)
from ...core.events import DomainEvent
from ...core.logging_utils import get_logger
from ...core.store import Transaction
from ...models.base import AuditContext
from ...models.change_set import (
    ALLOWED_CHANGE_SET_TRANSITIONS,
    ApprovalStatus,
    AuditEntry,
    ChangeSet,
    ChangeSetItem,
    ChangeSetStatus,
    ItemAction,
    PublishOutcome,
)
from ...models.preflight import PreflightReport
from ...models.versioning import VersionedEntity, VersionStatus
from ..versioning.version_store import VERSIONS, VersionStore
from .approval_policy import ApprovalPolicy
from .preflight import CHANGE_SETS, PreflightValidator

logger = get_logger(__name__)

PUBLISH_OUTCOMES = "publish_outcomes"


def change_set_event(name: str, audit: AuditContext, change_set: ChangeSet, **data: Any) -> DomainEvent:
    """Build a ``change_set.*`` event for a committed change set change."""
    return DomainEvent(
        name=name,
        actor=audit.actor,
        occurred_at=audit.now,
        subject_id=change_set.id,
        data={
            "status": change_set.status.value,
            "item_count": len(change_set.items),
            **data,
        },
    )


class ChangeSetManager:
    """Review, approval and atomic publish of change sets."""

    def __init__(
        self,
        versions: VersionStore,
        *,
        preflight: PreflightValidator | None = None,
        policy: ApprovalPolicy | None = None,
        settings: Settings | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize change set manager.

        Args:
            versions: Version store sharing the manager's document store
            preflight: Publish preflight validator
            policy: Approval role policy
            settings: Application settings
            id_factory: Generator of change set and item ids
        """
        self._versions = versions
        self._store = versions.document_store
        self._settings = settings or get_settings()
        self._preflight = preflight or PreflightValidator(versions, settings=self._settings)
        self._policy = policy or ApprovalPolicy(self._settings)
        self._new_id = id_factory or (lambda: str(uuid4()))

    # Queries

    @beartype
    async def get_change_set(self, change_set_id: str) -> ChangeSet:
        """Get a change set by id."""
        change_set = await self._store.get(CHANGE_SETS, change_set_id)
        if change_set is None:
            raise NotFoundError(
                "change-set-not-found",
                f"Change set {change_set_id} not found",
                {"change_set_id": change_set_id},
            )
        return change_set

    @beartype
    async def list_change_sets(self, status: ChangeSetStatus | None = None) -> list[ChangeSet]:
        """Change sets, newest first, optionally filtered by status."""
        change_sets = await self._store.scan(
            CHANGE_SETS, lambda cs: status is None or cs.status == status
        )
        return sorted(change_sets, key=lambda cs: cs.created_at, reverse=True)

    @beartype
    async def get_publish_preflight(
        self,
        change_set_id: str,
        jurisdictions: Sequence[str] = (),
        *,
        as_of: datetime | None = None,
    ) -> PreflightReport:
        """Read-only readiness report for publishing a change set."""
        change_set = await self.get_change_set(change_set_id)
        return await self._preflight.evaluate(change_set, jurisdictions, as_of=as_of)

    # Draft editing

    @beartype
    async def create_change_set(
        self,
        title: str,
        audit: AuditContext,
        *,
        target_effective_start: datetime | None = None,
    ) -> ChangeSet:
        """Open a new draft change set."""
        change_set = ChangeSet(
            id=self._new_id(),
            title=title,
            target_effective_start=target_effective_start,
            history=[AuditEntry(action="created", actor=audit.actor, at=audit.now)],
            created_at=audit.now,
            created_by=audit.actor,
            updated_at=audit.now,
            updated_by=audit.actor,
        )
        async with self._store.transaction() as tx:
            change_set = tx.put(CHANGE_SETS, change_set.id, change_set)
            tx.emit(change_set_event("change_set.created", audit, change_set))
        logger.info("Created change set %s (%s) by %s", change_set.id, title, audit.actor)
        return change_set

    @beartype
    async def clone_change_set(self, change_set_id: str, audit: AuditContext) -> ChangeSet:
        """Start a new draft change set from a rejected one, reusing its item references."""
        source = await self.get_change_set(change_set_id)
        if source.status != ChangeSetStatus.REJECTED:
            raise StateTransitionError(
                "change-set-not-rejected",
                f"Only rejected change sets can be cloned; {change_set_id} is "
                f"{source.status.value}",
                {"change_set_id": change_set_id, "status": source.status.value},
            )
        clone = ChangeSet(
            id=self._new_id(),
            title=source.title,
            items=[item.model_copy(update={"item_id": self._new_id()}) for item in source.items],
            target_effective_start=source.target_effective_start,
            cloned_from=source.id,
            history=[
                AuditEntry(
                    action="cloned",
                    actor=audit.actor,
                    at=audit.now,
                    metadata={"source_change_set_id": source.id},
                )
            ],
            created_at=audit.now,
            created_by=audit.actor,
            updated_at=audit.now,
            updated_by=audit.actor,
        )
        async with self._store.transaction() as tx:
            clone = tx.put(CHANGE_SETS, clone.id, clone)
            tx.emit(change_set_event("change_set.cloned", audit, clone, source_id=source.id))
        logger.info("Cloned rejected change set %s into %s", source.id, clone.id)
        return clone

    @beartype
    async def add_item(
        self,
        change_set_id: str,
        action: ItemAction,
        version_id: str,
        audit: AuditContext,
    ) -> ChangeSet:
        """Reference an entity version from a draft change set."""
        async with self._store.exclusive(self._lock_key(change_set_id)):
            async with self._store.transaction() as tx:
                change_set = await self._load(tx, change_set_id)
                self._require_draft(change_set, "add items to")
                version = await self._versions.get_version(version_id)
                if change_set.item_for_entity(version.entity_type, version.entity_id):
                    raise ValidationError(
                        "duplicate-entity-item",
                        f"Change set already has an item for {version.entity_type.value} "
                        f"{version.entity_id}",
                        {"entity_type": version.entity_type.value, "entity_id": version.entity_id},
                    )
                item = ChangeSetItem(
                    item_id=self._new_id(),
                    action=action,
                    entity_type=version.entity_type,
                    entity_id=version.entity_id,
                    target_version_id=version.version_id,
                )
                updated = self._save(
                    tx,
                    change_set,
                    audit,
                    "item_added",
                    items=[*change_set.items, item],
                    metadata={"item_id": item.item_id, "version_id": version_id},
                )
                tx.emit(change_set_event("change_set.item_added", audit, updated, item_id=item.item_id))
        return updated

    @beartype
    async def remove_item(self, change_set_id: str, item_id: str, audit: AuditContext) -> ChangeSet:
        """Drop an item from a draft change set."""
        async with self._store.exclusive(self._lock_key(change_set_id)):
            async with self._store.transaction() as tx:
                change_set = await self._load(tx, change_set_id)
                self._require_draft(change_set, "remove items from")
                remaining = [item for item in change_set.items if item.item_id != item_id]
                if len(remaining) == len(change_set.items):
                    raise NotFoundError(
                        "item-not-found",
                        f"Change set {change_set_id} has no item {item_id}",
                        {"change_set_id": change_set_id, "item_id": item_id},
                    )
                updated = self._save(
                    tx,
                    change_set,
                    audit,
                    "item_removed",
                    items=remaining,
                    metadata={"item_id": item_id},
                )
                tx.emit(change_set_event("change_set.item_removed", audit, updated, item_id=item_id))
        return updated

    # Review

    @beartype
    async def submit_for_review(self, change_set_id: str, audit: AuditContext) -> ChangeSet:
        """Send a draft change set and all its versions to review.

        Raises:
            ValidationError: The change set is empty or an item does not
                reference a draft version (every offending item is listed)
        """
        async with self._store.exclusive(self._lock_key(change_set_id)):
            async with self._store.transaction() as tx:
                change_set = await self._load(tx, change_set_id)
                self._require_edge(change_set, ChangeSetStatus.IN_REVIEW)
                if not change_set.items:
                    raise ValidationError(
                        "empty-change-set",
                        f"Change set {change_set_id} has no items",
                        {"change_set_id": change_set_id},
                    )

                versions: list[VersionedEntity] = []
                offending: list[dict[str, str | None]] = []
                for item in change_set.items:
                    version = await tx.get(VERSIONS, item.target_version_id)
                    if version is None or version.status != VersionStatus.DRAFT:
                        offending.append(
                            {
                                "item_id": item.item_id,
                                "version_id": item.target_version_id,
                                "status": None if version is None else version.status.value,
                            }
                        )
                    else:
                        versions.append(version)
                if offending:
                    logger.warning(
                        "Refused submit of change set %s: %d non-draft item(s)",
                        change_set_id,
                        len(offending),
                    )
                    raise ValidationError(
                        "items-not-draft",
                        "All items must reference draft versions; offending: "
                        + ", ".join(
                            f"{o['item_id']} ({o['version_id']} is {o['status'] or 'missing'})"
                            for o in offending
                        ),
                        {"change_set_id": change_set_id, "items": offending},
                    )

                for version in versions:
                    self._versions.stage_transition(tx, version, VersionStatus.REVIEW, audit)
                roles = self._policy.required_roles(change_set.items)
                updated = self._save(
                    tx,
                    change_set,
                    audit,
                    "submitted",
                    status=ChangeSetStatus.IN_REVIEW,
                    required_roles=roles,
                    approvals=self._policy.initial_approvals(roles),
                    metadata={"required_roles": roles},
                )
                tx.emit(change_set_event("change_set.submitted", audit, updated))
        logger.info("Change set %s submitted for review by %s", change_set_id, audit.actor)
        return updated

    @beartype
    async def return_to_draft(self, change_set_id: str, reason: str, audit: AuditContext) -> ChangeSet:
        """Send an in-review change set back to its editor with a reason."""
        async with self._store.exclusive(self._lock_key(change_set_id)):
            async with self._store.transaction() as tx:
                change_set = await self._load(tx, change_set_id)
                self._require_edge(change_set, ChangeSetStatus.DRAFT)
                await self._move_versions(tx, change_set, VersionStatus.DRAFT, audit, notes=reason)
                updated = self._save(
                    tx,
                    change_set,
                    audit,
                    "returned",
                    status=ChangeSetStatus.DRAFT,
                    required_roles=[],
                    approvals=[],
                    notes=reason,
                )
                tx.emit(change_set_event("change_set.returned", audit, updated, reason=reason))
        logger.info("Change set %s returned to draft by %s", change_set_id, audit.actor)
        return updated

    @beartype
    async def approve(
        self,
        change_set_id: str,
        role: str,
        audit: AuditContext,
        *,
        notes: str | None = None,
    ) -> ChangeSet:
        """Record one required role's approval.

        The change set and its versions move to ``approved`` only when the
        last pending role approves.
        """
        async with self._store.exclusive(self._lock_key(change_set_id)):
            async with self._store.transaction() as tx:
                change_set = await self._load(tx, change_set_id)
                self._require_status(change_set, ChangeSetStatus.IN_REVIEW, "approve")
                approvals = self._policy.record_decision(
                    change_set.approvals, role, ApprovalStatus.APPROVED, audit, notes
                )
                if self._policy.is_satisfied(approvals):
                    self._require_edge(change_set, ChangeSetStatus.APPROVED)
                    await self._move_versions(tx, change_set, VersionStatus.APPROVED, audit)
                    updated = self._save(
                        tx,
                        change_set,
                        audit,
                        "approved",
                        status=ChangeSetStatus.APPROVED,
                        approvals=approvals,
                        notes=notes,
                        metadata={"role": role},
                    )
                    tx.emit(change_set_event("change_set.approved", audit, updated, role=role))
                    logger.info("Change set %s approved (last role %s)", change_set_id, role)
                else:
                    updated = self._save(
                        tx,
                        change_set,
                        audit,
                        "approval_recorded",
                        approvals=approvals,
                        notes=notes,
                        metadata={"role": role},
                    )
                    tx.emit(
                        change_set_event("change_set.approval_recorded", audit, updated, role=role)
                    )
                    logger.info(
                        "Change set %s approved by %s; pending %s",
                        change_set_id,
                        role,
                        updated.pending_roles,
                    )
        return updated

    @beartype
    async def reject(self, change_set_id: str, role: str, notes: str, audit: AuditContext) -> ChangeSet:
        """Reject an in-review change set and return its versions to draft.

        Any required role may reject, including one that already approved.

        Raises:
            ValidationError: Blank ``notes`` or a role that is not required
        """
        if not notes.strip():
            raise ValidationError(
                "rejection-notes-required",
                "A rejection must explain what needs to change",
                {"change_set_id": change_set_id, "role": role},
            )
        async with self._store.exclusive(self._lock_key(change_set_id)):
            async with self._store.transaction() as tx:
                change_set = await self._load(tx, change_set_id)
                self._require_edge(change_set, ChangeSetStatus.REJECTED)
                approvals = self._policy.record_rejection(
                    change_set.approvals, role, audit, notes.strip()
                )
                await self._move_versions(tx, change_set, VersionStatus.DRAFT, audit, notes=notes)
                updated = self._save(
                    tx,
                    change_set,
                    audit,
                    "rejected",
                    status=ChangeSetStatus.REJECTED,
                    approvals=approvals,
                    notes=notes,
                    metadata={"role": role},
                )
                tx.emit(change_set_event("change_set.rejected", audit, updated, role=role))
        logger.info("Change set %s rejected by %s", change_set_id, role)
        return updated

    # Publish

    @beartype
    async def publish(
        self,
        change_set_id: str,
        audit: AuditContext,
        *,
        jurisdictions: Sequence[str] = (),
    ) -> PublishOutcome:
        """Publish every version of an approved change set atomically.

        Re-invoking publish on a published change set returns the recorded
        outcome without doing anything.

        Raises:
            StateTransitionError: The change set is not approved
            PreflightBlockedError: Preflight reported blocking issues
            ConcurrencyConflictError: Another transition is in flight or a
                referenced record changed concurrently
        """
        async with self._store.exclusive(self._lock_key(change_set_id)):
            change_set = await self.get_change_set(change_set_id)
            if change_set.status == ChangeSetStatus.PUBLISHED:
                recorded = await self._store.get(PUBLISH_OUTCOMES, change_set_id)
                logger.info("Change set %s already published; nothing to do", change_set_id)
                if recorded is None:
                    return PublishOutcome(change_set_id=change_set_id, already_published=True)
                return recorded.model_copy(update={"already_published": True})

            self._require_edge(change_set, ChangeSetStatus.PUBLISHED)
            report = await self._preflight.evaluate(change_set, jurisdictions, as_of=audit.now)
            if not report.can_publish:
                logger.warning(
                    "Publish of change set %s blocked by %d issue(s)",
                    change_set_id,
                    len(report.blocking_issues),
                )
                raise PreflightBlockedError(report)

            async with self._store.transaction() as tx:
                # Revision checks on commit catch anything that changed since preflight.
                change_set = await self._load(tx, change_set_id)
                self._require_edge(change_set, ChangeSetStatus.PUBLISHED)
                published: list[str] = []
                superseded: list[str] = []
                archived: list[str] = []
                for item in change_set.items:
                    version = await self._load_version(tx, item.target_version_id)
                    new_version, closed, retired = await self._versions.stage_publish(
                        tx,
                        version,
                        audit,
                        effective_start=change_set.target_effective_start,
                        retire=item.action == ItemAction.DELETE,
                    )
                    published.append(new_version.version_id)
                    superseded.extend(closed)
                    archived.extend(retired)

                outcome = tx.put(
                    PUBLISH_OUTCOMES,
                    change_set_id,
                    PublishOutcome(
                        change_set_id=change_set_id,
                        published_version_ids=published,
                        superseded_version_ids=superseded,
                        archived_version_ids=archived,
                    ),
                )
                updated = self._save(
                    tx,
                    change_set,
                    audit,
                    "published",
                    status=ChangeSetStatus.PUBLISHED,
                    metadata={"published_version_ids": published},
                )
                tx.emit(change_set_event("change_set.published", audit, updated))

        logger.info(
            "Published change set %s: %d version(s) by %s",
            change_set_id,
            len(published),
            audit.actor,
        )
        return outcome

    # Internals

    @staticmethod
    def _lock_key(change_set_id: str) -> str:
        return f"change_set:{change_set_id}"

    @staticmethod
    async def _load(tx: Transaction, change_set_id: str) -> ChangeSet:
        change_set = await tx.get(CHANGE_SETS, change_set_id)
        if change_set is None:
            raise NotFoundError(
                "change-set-not-found",
                f"Change set {change_set_id} not found",
                {"change_set_id": change_set_id},
            )
        return change_set

    @staticmethod
    async def _load_version(tx: Transaction, version_id: str) -> VersionedEntity:
        version = await tx.get(VERSIONS, version_id)
        if version is None:
            raise NotFoundError(
                "version-not-found",
                f"Version {version_id} not found",
                {"version_id": version_id},
            )
        return version

    async def _move_versions(
        self,
        tx: Transaction,
        change_set: ChangeSet,
        target: VersionStatus,
        audit: AuditContext,
        *,
        notes: str | None = None,
    ) -> None:
        for item in change_set.items:
            version = await self._load_version(tx, item.target_version_id)
            self._versions.stage_transition(tx, version, target, audit, notes=notes)

    @staticmethod
    def _save(
        tx: Transaction,
        change_set: ChangeSet,
        audit: AuditContext,
        action: str,
        *,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
        **changes: Any,
    ) -> ChangeSet:
        entry = AuditEntry(
            action=action,
            actor=audit.actor,
            at=audit.now,
            notes=notes,
            metadata=metadata or {},
        )
        return tx.put(
            CHANGE_SETS,
            change_set.id,
            change_set.model_copy(
                update={
                    **changes,
                    "history": [*change_set.history, entry],
                    "updated_at": audit.now,
                    "updated_by": audit.actor,
                }
            ),
            expected_revision=change_set.revision,
        )

    @staticmethod
    def _require_status(change_set: ChangeSet, status: ChangeSetStatus, verb: str) -> None:
        if change_set.status != status:
            logger.warning(
                "Refused to %s change set %s in status %s",
                verb,
                change_set.id,
                change_set.status.value,
            )
            raise StateTransitionError(
                "illegal-transition",
                f"Cannot {verb} change set {change_set.id} while {change_set.status.value}",
                {"change_set_id": change_set.id, "status": change_set.status.value},
            )

    def _require_draft(self, change_set: ChangeSet, verb: str) -> None:
        self._require_status(change_set, ChangeSetStatus.DRAFT, verb)

    @staticmethod
    def _require_edge(change_set: ChangeSet, target: ChangeSetStatus) -> None:
        if target not in ALLOWED_CHANGE_SET_TRANSITIONS[change_set.status]:
            logger.warning(
                "Refused change set %s transition %s -> %s",
                change_set.id,
                change_set.status.value,
                target.value,
            )
            raise StateTransitionError(
                "illegal-transition",
                f"Change set {change_set.id} cannot move from {change_set.status.value} "
                f"to {target.value}",
                {
                    "change_set_id": change_set.id,
                    "from": change_set.status.value,
                    "to": target.value,
                },
            )
