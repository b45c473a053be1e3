# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Error taxonomy shared by the rating engine and the configuration lifecycle.

Every error carries a machine readable ``code``, a human readable message and
a ``context`` mapping so callers can surface the failure verbatim.
"""

from typing import TYPE_CHECKING, Any

from beartype import beartype

if TYPE_CHECKING:
    from ..models.preflight import PreflightReport


class RatebookError(Exception):
    """Base class for all domain errors."""

    kind: str = "error"

    def __init__(
        self,
        code: str,
        message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize domain error."""
        self.code = code
        self.message = message or code
        self.context = dict(context or {})
        super().__init__(self.message if message is None else f"{code}: {message}")

    @beartype
    def to_dict(self) -> dict[str, Any]:
        """Convert to an error response body."""
        return {
            "error": self.kind,
            "code": self.code,
            "message": self.message,
            "context": {key: _jsonable(value) for key, value in self.context.items()},
        }


class ValidationError(RatebookError):
    """Malformed input: bad step sequence, non-draft items, invalid payload."""

    kind = "validation_error"


class StateTransitionError(RatebookError):
    """Illegal lifecycle edge for a version or change set."""

    kind = "state_transition_error"


class NotFoundError(RatebookError):
    """Missing version, entity, change set or rating table cell."""

    kind = "not_found"


class ConcurrencyConflictError(RatebookError):
    """Stale revision or a concurrent in-flight transition."""

    kind = "concurrency_conflict"


class PreflightBlockedError(RatebookError):
    """Publish attempted while the preflight report has blocking issues."""

    kind = "preflight_blocked"

    def __init__(self, report: "PreflightReport") -> None:
        """Initialize with the full preflight report."""
        self.report = report
        blocking = report.blocking_issues
        super().__init__(
            "preflight-blocked",
            f"{len(blocking)} blocking issue(s): "
            + "; ".join(issue.message for issue in blocking),
            {"change_set_id": report.change_set_id},
        )

    @beartype
    def to_dict(self) -> dict[str, Any]:
        """Convert to an error response body including the report."""
        body = super().to_dict()
        body["report"] = self.report.model_dump(mode="json")
        return body


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    return str(value)
