# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Core infrastructure: settings, logging, errors, store and events."""

from .config import Settings, get_settings
from .errors import (
    ConcurrencyConflictError,
    NotFoundError,
    PreflightBlockedError,
    RatebookError,
    StateTransitionError,
    ValidationError,
)
from .events import DomainEvent, EventBus
from .store import DocumentStore, Transaction

__all__ = [
    "Settings",
    "get_settings",
    "RatebookError",
    "ValidationError",
    "StateTransitionError",
    "NotFoundError",
    "ConcurrencyConflictError",
    "PreflightBlockedError",
    "DomainEvent",
    "EventBus",
    "DocumentStore",
    "Transaction",
]
