"""Change set endpoints: drafting, review, approval and publish."""

from typing import Annotated

from beartype import beartype
from fastapi import APIRouter, Query, status

from ...models.change_set import ChangeSet, ChangeSetStatus, PublishOutcome
from ...models.preflight import PreflightReport
from ...schemas.requests import (
    ApprovalRequest,
    ChangeSetCreateRequest,
    ChangeSetItemRequest,
    PublishRequest,
    RejectionRequest,
    ReturnToDraftRequest,
)
from ..dependencies import Audit, ChangeSets

router = APIRouter(prefix="/change-sets")


@router.post("", status_code=status.HTTP_201_CREATED)
@beartype
async def create_change_set(
    request: ChangeSetCreateRequest,
    manager: ChangeSets,
    audit: Audit,
) -> ChangeSet:
    """Open a draft change set."""
    return await manager.create_change_set(
        request.title, audit, target_effective_start=request.target_effective_start
    )


@router.get("")
@beartype
async def list_change_sets(
    manager: ChangeSets,
    change_set_status: Annotated[ChangeSetStatus | None, Query(alias="status")] = None,
) -> list[ChangeSet]:
    """List change sets, newest first."""
    return await manager.list_change_sets(change_set_status)


@router.get("/{change_set_id}")
@beartype
async def get_change_set(change_set_id: str, manager: ChangeSets) -> ChangeSet:
    """Get a change set."""
    return await manager.get_change_set(change_set_id)


@router.post("/{change_set_id}/items", status_code=status.HTTP_201_CREATED)
@beartype
async def add_item(
    change_set_id: str,
    request: ChangeSetItemRequest,
    manager: ChangeSets,
    audit: Audit,
) -> ChangeSet:
    """Reference a version from a draft change set."""
    return await manager.add_item(change_set_id, request.action, request.version_id, audit)


@router.delete("/{change_set_id}/items/{item_id}")
@beartype
async def remove_item(
    change_set_id: str,
    item_id: str,
    manager: ChangeSets,
    audit: Audit,
) -> ChangeSet:
    """Drop an item from a draft change set."""
    return await manager.remove_item(change_set_id, item_id, audit)


@router.post("/{change_set_id}/submit")
@beartype
async def submit_for_review(change_set_id: str, manager: ChangeSets, audit: Audit) -> ChangeSet:
    """Submit a draft change set for review."""
    return await manager.submit_for_review(change_set_id, audit)


@router.post("/{change_set_id}/return")
@beartype
async def return_to_draft(
    change_set_id: str,
    request: ReturnToDraftRequest,
    manager: ChangeSets,
    audit: Audit,
) -> ChangeSet:
    """Return an in-review change set to draft."""
    return await manager.return_to_draft(change_set_id, request.reason, audit)


@router.post("/{change_set_id}/approve")
@beartype
async def approve(
    change_set_id: str,
    request: ApprovalRequest,
    manager: ChangeSets,
    audit: Audit,
) -> ChangeSet:
    """Record a required role's approval."""
    return await manager.approve(change_set_id, request.role, audit, notes=request.notes)


@router.post("/{change_set_id}/reject")
@beartype
async def reject(
    change_set_id: str,
    request: RejectionRequest,
    manager: ChangeSets,
    audit: Audit,
) -> ChangeSet:
    """Reject an in-review change set."""
    return await manager.reject(change_set_id, request.role, request.notes, audit)


@router.get("/{change_set_id}/preflight")
@beartype
async def get_publish_preflight(
    change_set_id: str,
    manager: ChangeSets,
    jurisdictions: Annotated[list[str] | None, Query()] = None,
) -> PreflightReport:
    """Readiness report; issues are returned, not raised."""
    return await manager.get_publish_preflight(change_set_id, jurisdictions or [])


@router.post("/{change_set_id}/publish")
@beartype
async def publish(
    change_set_id: str,
    manager: ChangeSets,
    audit: Audit,
    request: PublishRequest | None = None,
) -> PublishOutcome:
    """Publish an approved change set; safe to retry."""
    jurisdictions = request.jurisdictions if request is not None else []
    return await manager.publish(change_set_id, audit, jurisdictions=jurisdictions)


@router.post("/{change_set_id}/clone", status_code=status.HTTP_201_CREATED)
@beartype
async def clone_change_set(change_set_id: str, manager: ChangeSets, audit: Audit) -> ChangeSet:
    """Start a new draft change set from a rejected one."""
    return await manager.clone_change_set(change_set_id, audit)
