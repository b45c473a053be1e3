"""Approval role policy for change sets."""

from collections.abc import Sequence

from beartype import beartype

from ...core.config import Settings, get_settings
from ...core.errors import ValidationError
from ...models.base import AuditContext
from ...models.change_set import Approval, ApprovalStatus, ChangeSetItem


class ApprovalPolicy:
    """Decides which distinct roles must approve a change set."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize approval policy from settings."""
        self._settings = settings or get_settings()

    @beartype
    def required_roles(self, items: Sequence[ChangeSetItem]) -> list[str]:
        """Configured minimum roles plus roles for the entity types touched."""
        roles = list(self._settings.required_approval_roles)
        touched = sorted({item.entity_type.value for item in items})
        for entity_type in touched:
            for role in self._settings.approval_roles_by_entity_type.get(entity_type, []):
                if role not in roles:
                    roles.append(role)
        return roles

    @beartype
    @staticmethod
    def initial_approvals(roles: Sequence[str]) -> list[Approval]:
        """One pending approval record per required role."""
        return [Approval(role=role) for role in roles]

    @beartype
    @staticmethod
    def record_decision(
        approvals: Sequence[Approval],
        role: str,
        status: ApprovalStatus,
        audit: AuditContext,
        notes: str | None = None,
    ) -> list[Approval]:
        """Record one role's decision.

        Raises:
            ValidationError: ``role`` is not required or already decided
        """
        updated: list[Approval] = []
        recorded = False
        for approval in approvals:
            if approval.role == role and approval.status == ApprovalStatus.PENDING:
                updated.append(
                    approval.model_copy(
                        update={
                            "status": status,
                            "actor": audit.actor,
                            "decided_at": audit.now,
                            "notes": notes,
                        }
                    )
                )
                recorded = True
            else:
                updated.append(approval)

        if not recorded:
            known = {approval.role: approval.status.value for approval in approvals}
            raise ValidationError(
                "role-not-pending",
                f"Role {role} is not a pending approver"
                + (f" (already {known[role]})" if role in known else ""),
                {"role": role, "required_roles": list(known)},
            )
        return updated

    @beartype
    @staticmethod
    def record_rejection(
        approvals: Sequence[Approval],
        role: str,
        audit: AuditContext,
        notes: str,
    ) -> list[Approval]:
        """Record a rejection by a required role, overwriting an earlier approval.

        Raises:
            ValidationError: ``role`` is not a required role
        """
        if not any(approval.role == role for approval in approvals):
            raise ValidationError(
                "role-not-required",
                f"Role {role} is not a required approver",
                {"role": role, "required_roles": [a.role for a in approvals]},
            )
        return [
            approval.model_copy(
                update={
                    "status": ApprovalStatus.REJECTED,
                    "actor": audit.actor,
                    "decided_at": audit.now,
                    "notes": notes,
                }
            )
            if approval.role == role
            else approval
            for approval in approvals
        ]

    @beartype
    @staticmethod
    def is_satisfied(approvals: Sequence[Approval]) -> bool:
        """True when every required role approved."""
        return bool(approvals) and all(
            approval.status == ApprovalStatus.APPROVED for approval in approvals
        )
