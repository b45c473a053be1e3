# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Publish preflight validation.

Preflight is read-only and returns its findings as a structured report so an
editor can fix them one by one. Publish re-runs it and refuses while any
error-severity issue remains.

A version counts as publishable when it is ``approved`` or ``published`` (and
not a retired tombstone), or when the change set under check is itself about
to publish it.
"""

from collections.abc import Sequence
from datetime import datetime, timezone

from beartype import beartype
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ...core.config import Settings, get_settings
from ...core.errors import NotFoundError
from ...core.logging_utils import get_logger
from ...models.change_set import ApprovalStatus, ChangeSet, ChangeSetStatus, ItemAction
from ...models.payloads import (
    FormPayload,
    ProductPayload,
    RateProgramPayload,
    RulePayload,
    StateProgramStatus,
    TablePayload,
)
from ...models.preflight import IssueSeverity, PreflightIssue, PreflightReport
from ...models.rating import FactorStep
from ...models.versioning import PUBLISHABLE_STATUSES, EntityType, VersionedEntity, VersionStatus
from ..rating.rating_engine import STATE_CODE_FIELD
from ..rating.table_resolver import TableResolver
from ..versioning.version_store import VersionStore

logger = get_logger(__name__)

CHANGE_SETS = "change_sets"


class _ChangeSetView:
    """Versions a change set proposes, keyed by entity."""

    def __init__(self, change_set: ChangeSet, versions: dict[str, VersionedEntity]) -> None:
        self.change_set = change_set
        self.versions = versions
        self.proposed: dict[tuple[EntityType, str], VersionedEntity] = {}
        self.deleted: set[tuple[EntityType, str]] = set()
        for item in change_set.items:
            version = versions.get(item.target_version_id)
            if version is None:
                continue
            key = (item.entity_type, item.entity_id)
            if item.action == ItemAction.DELETE:
                self.deleted.add(key)
            else:
                self.proposed[key] = version

    @property
    def proposed_ids(self) -> set[str]:
        return {version.version_id for version in self.proposed.values()}

    def of_type(self, entity_type: EntityType) -> list[VersionedEntity]:
        return [v for (kind, _), v in self.proposed.items() if kind == entity_type]


class PreflightValidator:
    """Checks whether a change set can be published."""

    def __init__(
        self,
        versions: VersionStore,
        resolver: TableResolver | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize preflight validator.

        Args:
            versions: Version store to read referenced versions from
            resolver: Table resolver used for table coverage checks
            settings: Limits and reporting caps
        """
        self._versions = versions
        self._resolver = resolver or TableResolver()
        self._settings = settings or get_settings()

    @beartype
    async def get_preflight(
        self,
        change_set_id: str,
        jurisdictions: Sequence[str] = (),
        *,
        as_of: datetime | None = None,
    ) -> PreflightReport:
        """Load a change set and check it.

        Raises:
            NotFoundError: Unknown change set
        """
        change_set = await self._versions.document_store.get(CHANGE_SETS, change_set_id)
        if change_set is None:
            raise NotFoundError(
                "change-set-not-found",
                f"Change set {change_set_id} not found",
                {"change_set_id": change_set_id},
            )
        return await self.evaluate(change_set, jurisdictions, as_of=as_of)

    @beartype
    async def evaluate(
        self,
        change_set: ChangeSet,
        jurisdictions: Sequence[str] = (),
        *,
        as_of: datetime | None = None,
    ) -> PreflightReport:
        """Run every readiness check against ``change_set``."""
        states = sorted({state.strip().upper() for state in jurisdictions if state.strip()})
        now = as_of or datetime.now(timezone.utc)
        issues: list[PreflightIssue] = []

        versions: dict[str, VersionedEntity] = {}
        for item in change_set.items:
            version = await self._versions.find_version(item.target_version_id)
            if version is None:
                issues.append(
                    PreflightIssue(
                        code="missing-version",
                        message=f"Item {item.item_id} references unknown version "
                        f"{item.target_version_id}",
                        entity_type=item.entity_type,
                        entity_id=item.entity_id,
                        version_id=item.target_version_id,
                    )
                )
                continue
            versions[version.version_id] = version
        view = _ChangeSetView(change_set, versions)

        issues.extend(self._check_lifecycle(change_set, versions, now))
        coverage_ids = self._referenced_coverages(view)
        issues.extend(await self._check_forms(view, coverage_ids))
        issues.extend(await self._check_rules(view, coverage_ids))
        issues.extend(await self._check_rate_programs(view, states))
        issues.extend(await self._check_state_programs(view, states))

        report = PreflightReport(
            change_set_id=change_set.id,
            jurisdictions=states,
            issues=issues,
            item_count=len(change_set.items),
            approval_count=len(change_set.approvals),
            approved_count=sum(
                1 for a in change_set.approvals if a.status == ApprovalStatus.APPROVED
            ),
        )
        logger.info(
            "Preflight for change set %s: %d issue(s), %d blocking",
            change_set.id,
            len(report.issues),
            len(report.blocking_issues),
        )
        return report

    def _check_lifecycle(
        self,
        change_set: ChangeSet,
        versions: dict[str, VersionedEntity],
        now: datetime,
    ) -> list[PreflightIssue]:
        issues: list[PreflightIssue] = []
        if change_set.status != ChangeSetStatus.APPROVED:
            issues.append(
                PreflightIssue(
                    code="not-approved",
                    message=f"Change set is {change_set.status.value}, not approved",
                )
            )
        pending = [a.role for a in change_set.approvals if a.status == ApprovalStatus.PENDING]
        if pending:
            issues.append(
                PreflightIssue(
                    code="approvals-pending",
                    message=f"Approvals pending from {', '.join(pending)}",
                )
            )
        rejected = [a.role for a in change_set.approvals if a.status == ApprovalStatus.REJECTED]
        if rejected:
            issues.append(
                PreflightIssue(
                    code="approval-rejected",
                    message=f"Rejected by {', '.join(rejected)}",
                )
            )

        if not change_set.items:
            issues.append(PreflightIssue(code="no-items", message="Change set has no items"))
        elif len(change_set.items) > self._settings.max_publish_items:
            issues.append(
                PreflightIssue(
                    code="too-many-items",
                    message=f"{len(change_set.items)} items exceed the publish limit of "
                    f"{self._settings.max_publish_items}",
                )
            )

        if change_set.status == ChangeSetStatus.APPROVED:
            for version in versions.values():
                if version.status != VersionStatus.APPROVED:
                    issues.append(
                        PreflightIssue(
                            code="version-not-approved",
                            message=f"Version {version.version_id} of {version.entity_type.value} "
                            f"{version.entity_id} is {version.status.value}",
                            entity_type=version.entity_type,
                            entity_id=version.entity_id,
                            version_id=version.version_id,
                        )
                    )

        if (
            change_set.target_effective_start is not None
            and change_set.target_effective_start < now
        ):
            issues.append(
                PreflightIssue(
                    code="target-date-in-past",
                    severity=IssueSeverity.WARNING,
                    message="Target effective date "
                    f"{change_set.target_effective_start.date().isoformat()} is in the past",
                )
            )
        return issues

    def _referenced_coverages(self, view: _ChangeSetView) -> list[str]:
        """Coverages proposed directly or referenced by a proposed product."""
        coverage_ids = [coverage.entity_id for coverage in view.of_type(EntityType.COVERAGE)]
        for product in view.of_type(EntityType.PRODUCT):
            payload = _parse(ProductPayload, product)
            if payload is None:
                continue
            for coverage_id in payload.coverage_ids:
                if coverage_id not in coverage_ids:
                    coverage_ids.append(coverage_id)
        return coverage_ids

    async def _candidates(
        self, view: _ChangeSetView, entity_type: EntityType
    ) -> list[VersionedEntity]:
        """Versions of a type that will be live once the change set publishes."""
        candidates = list(view.of_type(entity_type))
        for version in await self._versions.scan_versions(
            entity_type, statuses=PUBLISHABLE_STATUSES
        ):
            key = (entity_type, version.entity_id)
            if key in view.proposed or key in view.deleted or version.retired:
                continue
            candidates.append(version)
        return candidates

    async def _check_forms(
        self, view: _ChangeSetView, coverage_ids: list[str]
    ) -> list[PreflightIssue]:
        mapped: set[str] = set()
        for form in await self._candidates(view, EntityType.FORM):
            payload = _parse(FormPayload, form)
            if payload is not None:
                mapped.update(payload.coverage_ids)
        return [
            PreflightIssue(
                code="missing-form",
                message=f"Coverage {coverage_id} has no approved or published form",
                entity_type=EntityType.COVERAGE,
                entity_id=coverage_id,
            )
            for coverage_id in coverage_ids
            if coverage_id not in mapped
        ]

    async def _check_rules(
        self, view: _ChangeSetView, coverage_ids: list[str]
    ) -> list[PreflightIssue]:
        issues: list[PreflightIssue] = []
        wanted = set(coverage_ids)
        for rule in await self._candidates(view, EntityType.RULE):
            payload = _parse(RulePayload, rule)
            if payload is None or not wanted & set(payload.coverage_ids):
                continue
            for target_id in payload.target_version_ids:
                if await self._is_publishable(view, target_id):
                    continue
                issues.append(
                    PreflightIssue(
                        code="rule-target-not-publishable",
                        message=f"Rule {rule.entity_id} targets version {target_id}, "
                        "which is missing or not publishable",
                        entity_type=EntityType.RULE,
                        entity_id=rule.entity_id,
                        version_id=rule.version_id,
                    )
                )
        return issues

    async def _check_rate_programs(
        self, view: _ChangeSetView, states: list[str]
    ) -> list[PreflightIssue]:
        programs = list(view.of_type(EntityType.RATE_PROGRAM))
        issues: list[PreflightIssue] = []

        checked = {program.entity_id for program in programs}
        for product in view.of_type(EntityType.PRODUCT):
            payload = _parse(ProductPayload, product)
            for program_id in payload.rate_program_ids if payload is not None else []:
                if program_id in checked:
                    continue
                checked.add(program_id)
                program = await self._live_version(view, EntityType.RATE_PROGRAM, program_id)
                if program is None:
                    issues.append(
                        PreflightIssue(
                            code="missing-rate-program",
                            message=f"Product {product.entity_id} references rate program "
                            f"{program_id}, which has no publishable version",
                            entity_type=EntityType.RATE_PROGRAM,
                            entity_id=program_id,
                        )
                    )
                else:
                    programs.append(program)

        for program in programs:
            try:
                payload = RateProgramPayload.model_validate(program.payload)
            except PydanticValidationError as exc:
                issues.append(
                    PreflightIssue(
                        code="malformed-rate-program",
                        message=f"Rate program {program.entity_id} version "
                        f"{program.version_id} is malformed: {exc.errors()[0]['msg']}",
                        entity_type=EntityType.RATE_PROGRAM,
                        entity_id=program.entity_id,
                        version_id=program.version_id,
                    )
                )
                continue
            for step in payload.steps:
                if isinstance(step, FactorStep) and step.table:
                    issue = await self._check_table_step(view, program, step, states)
                    if issue is not None:
                        issues.append(issue)
        return issues

    async def _check_table_step(
        self,
        view: _ChangeSetView,
        program: VersionedEntity,
        step: FactorStep,
        states: list[str],
    ) -> PreflightIssue | None:
        table_id = step.table or ""
        where = f"Rate program {program.entity_id} step {step.order} ({step.name or 'unnamed'})"
        table_version = await self._live_version(view, EntityType.TABLE, table_id)
        if table_version is None:
            return PreflightIssue(
                code="missing-table",
                message=f"{where} references table {table_id}, which does not exist or "
                "has no publishable version",
                entity_type=EntityType.RATE_PROGRAM,
                entity_id=program.entity_id,
                version_id=program.version_id,
            )
        table = _parse(TablePayload, table_version)
        if table is None or not table.cells:
            return PreflightIssue(
                code="empty-table",
                message=f"{where} references table {table_id}, which has no entries",
                entity_type=EntityType.TABLE,
                entity_id=table_id,
                version_id=table_version.version_id,
            )

        scope = list(step.state_scope)
        if states:
            scope = [state for state in scope if state in states] if scope else states
        restrict = {
            dimension.name: scope
            for dimension in table.dimensions
            if scope and step.lookup_dimensions.get(dimension.name, dimension.field) == STATE_CODE_FIELD
        }
        missing = self._resolver.missing_combinations(table, restrict)
        if not missing:
            return None
        cap = self._settings.max_reported_missing_cells
        listed = ", ".join(missing[:cap])
        more = f" and {len(missing) - cap} more" if len(missing) > cap else ""
        return PreflightIssue(
            code="incomplete-table",
            message=f"{where}: table {table_id} lacks {len(missing)} combination(s): "
            f"{listed}{more}",
            entity_type=EntityType.TABLE,
            entity_id=table_id,
            version_id=table_version.version_id,
        )

    async def _check_state_programs(
        self, view: _ChangeSetView, states: list[str]
    ) -> list[PreflightIssue]:
        issues: list[PreflightIssue] = []
        for product in view.of_type(EntityType.PRODUCT):
            payload = _parse(ProductPayload, product)
            if payload is None:
                continue
            programs = {program.state_code: program for program in payload.state_programs}
            for state in states:
                program = programs.get(state)
                if program is None:
                    issues.append(
                        self._state_issue(
                            "state-program-missing",
                            f"Product {product.entity_id} has no state program for {state}",
                            product,
                            state,
                        )
                    )
                    continue
                if program.status == StateProgramStatus.NOT_OFFERED:
                    issues.append(
                        self._state_issue(
                            "state-program-not-offered",
                            f"Product {product.entity_id} is not offered in {state}",
                            product,
                            state,
                        )
                    )
                    continue
                if program.status == StateProgramStatus.DRAFT:
                    issues.append(
                        self._state_issue(
                            "state-program-not-filed",
                            f"State program {state} of product {product.entity_id} is still draft",
                            product,
                            state,
                            severity=IssueSeverity.WARNING,
                        )
                    )
                for artifact_id in program.required_artifact_version_ids:
                    if not await self._is_publishable(view, artifact_id):
                        issues.append(
                            self._state_issue(
                                "state-program-artifact-not-publishable",
                                f"State program {state} of product {product.entity_id} "
                                f"requires version {artifact_id}, which is missing or not "
                                "publishable",
                                product,
                                state,
                            )
                        )
        return issues

    @staticmethod
    def _state_issue(
        code: str,
        message: str,
        product: VersionedEntity,
        state: str,
        severity: IssueSeverity = IssueSeverity.ERROR,
    ) -> PreflightIssue:
        return PreflightIssue(
            code=code,
            severity=severity,
            message=message,
            entity_type=EntityType.PRODUCT,
            entity_id=product.entity_id,
            version_id=product.version_id,
            state_code=state,
        )

    async def _live_version(
        self, view: _ChangeSetView, entity_type: EntityType, entity_id: str
    ) -> VersionedEntity | None:
        key = (entity_type, entity_id)
        if key in view.proposed:
            return view.proposed[key]
        if key in view.deleted:
            return None
        for version in await self._versions.list_versions(entity_type, entity_id):
            if version.status in PUBLISHABLE_STATUSES and not version.retired:
                return version
        return None

    async def _is_publishable(self, view: _ChangeSetView, version_id: str) -> bool:
        if version_id in view.proposed_ids:
            return True
        version = await self._versions.find_version(version_id)
        if version is None or version.retired:
            return False
        if (version.entity_type, version.entity_id) in view.deleted:
            return False
        return version.status in PUBLISHABLE_STATUSES


def _parse(schema: type[BaseModel], version: VersionedEntity) -> BaseModel | None:
    try:
        return schema.model_validate(version.payload)
    except PydanticValidationError:
        logger.warning(
            "Version %s payload no longer matches the %s schema",
            version.version_id,
            version.entity_type.value,
        )
        return None
