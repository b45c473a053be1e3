"""Post-commit domain event publication.

Side effects of lifecycle changes (search indexing, task creation,
notifications) belong to subscribers. Events are handed to the bus only after
the transaction that produced them committed, so the commit path itself never
performs external work.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from beartype import beartype
from pydantic import Field

from ..models.base import BaseModelConfig
from .logging_utils import get_logger

logger = get_logger(__name__)


@beartype
class DomainEvent(BaseModelConfig):
    """Notification that a committed lifecycle change happened."""

    name: str = Field(..., min_length=1, max_length=100, description="e.g. version.created")
    actor: str = Field(..., min_length=1)
    occurred_at: datetime = Field(...)
    subject_id: str = Field(..., min_length=1, description="Version or change set id")
    data: dict[str, Any] = Field(default_factory=dict)


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """In-process fan-out of committed domain events to subscribers."""

    def __init__(self) -> None:
        """Initialize an empty bus."""
        self._handlers: list[tuple[str | None, EventHandler]] = []

    @beartype
    def subscribe(self, handler: EventHandler, *, prefix: str | None = None) -> None:
        """Register a handler, optionally only for event names with ``prefix``."""
        self._handlers.append((prefix, handler))

    @beartype
    async def publish(self, events: list[DomainEvent]) -> None:
        """Deliver committed events in order.

        A failing subscriber is logged and skipped: the state change it
        reacts to is already committed and must not be reported as failed.
        """
        for event in events:
            logger.debug("Publishing event %s for %s", event.name, event.subject_id)
            for prefix, handler in self._handlers:
                if prefix is not None and not event.name.startswith(prefix):
                    continue
                try:
                    await handler(event)
                except Exception:
                    logger.exception(
                        "Event subscriber failed for %s (%s)",
                        event.name,
                        event.subject_id,
                    )
