"""Change set review, approval and publish services."""

from .approval_policy import ApprovalPolicy
from .change_set_manager import ChangeSetManager
from .preflight import PreflightValidator

__all__ = ["ChangeSetManager", "ApprovalPolicy", "PreflightValidator"]
