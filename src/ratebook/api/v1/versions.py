"""Versioned entity endpoints.

Drafts are created and edited here; lifecycle moves beyond review normally
happen through change sets.
"""

from typing import Annotated

from beartype import beartype
from fastapi import APIRouter, Query, status

from ...models.versioning import EntityType, VersionDiff, VersionedEntity, VersionStatus
from ...schemas.requests import (
    VersionCloneRequest,
    VersionCreateRequest,
    VersionTransitionRequest,
    VersionUpdateRequest,
)
from ..dependencies import Audit, Versions

router = APIRouter(prefix="/versions")


@router.get("/compare")
@beartype
async def compare_versions(
    left: Annotated[str, Query(min_length=1)],
    right: Annotated[str, Query(min_length=1)],
    versions: Versions,
) -> VersionDiff:
    """Structural diff of two versions of the same entity."""
    return await versions.compare_versions(left, right)


@router.get("/by-id/{version_id}")
@beartype
async def get_version(version_id: str, versions: Versions) -> VersionedEntity:
    """Get a single version."""
    return await versions.get_version(version_id)


@router.put("/by-id/{version_id}")
@beartype
async def update_draft_version(
    version_id: str,
    request: VersionUpdateRequest,
    versions: Versions,
    audit: Audit,
) -> VersionedEntity:
    """Replace the payload of a draft version."""
    return await versions.update_draft_version(
        version_id,
        request.payload,
        audit,
        expected_revision=request.expected_revision,
    )


@router.post("/by-id/{version_id}/clone", status_code=status.HTTP_201_CREATED)
@beartype
async def clone_version(
    version_id: str,
    versions: Versions,
    audit: Audit,
    request: VersionCloneRequest | None = None,
) -> VersionedEntity:
    """Start a new draft from an existing version."""
    summary = request.summary if request is not None else None
    return await versions.clone_version(version_id, audit, summary=summary)


@router.post("/by-id/{version_id}/transition")
@beartype
async def transition_version(
    version_id: str,
    request: VersionTransitionRequest,
    versions: Versions,
    audit: Audit,
) -> VersionedEntity:
    """Move a version along the lifecycle graph."""
    return await versions.transition_version_status(
        version_id,
        request.status,
        audit,
        notes=request.notes,
        expected_revision=request.expected_revision,
    )


@router.post("/{entity_type}/{entity_id}", status_code=status.HTTP_201_CREATED)
@beartype
async def create_draft_version(
    entity_type: EntityType,
    entity_id: str,
    request: VersionCreateRequest,
    versions: Versions,
    audit: Audit,
) -> VersionedEntity:
    """Create a new draft version of an entity."""
    return await versions.create_draft_version(
        entity_type,
        entity_id,
        request.payload,
        audit,
        summary=request.summary,
        effective_start=request.effective_start,
        effective_end=request.effective_end,
    )


@router.get("/{entity_type}/{entity_id}")
@beartype
async def list_versions(
    entity_type: EntityType,
    entity_id: str,
    versions: Versions,
    version_status: Annotated[VersionStatus | None, Query(alias="status")] = None,
) -> list[VersionedEntity]:
    """Version history of an entity, newest first."""
    return await versions.list_versions(entity_type, entity_id, status=version_status)
