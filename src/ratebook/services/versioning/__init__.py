"""Versioned entity lifecycle services."""

from .diff import diff_payloads
from .payloads import check_payload, validate_payload
from .version_store import VersionStore

__all__ = ["VersionStore", "check_payload", "validate_payload", "diff_payloads"]
