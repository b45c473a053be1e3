# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""FastAPI dependencies for services and the acting user.

Services are built once per application and kept on ``app.state``; the acting
user comes from the ``X-Actor`` header and is stamped with the request time.
"""

from typing import Annotated

from attrs import define
from beartype import beartype
from fastapi import Depends, Header, Request

from ..core.config import Settings, get_settings
from ..core.events import EventBus
from ..core.store import DocumentStore
from ..models.base import AuditContext
from ..models.rating import RoundingRule
from ..services.change_sets import ChangeSetManager
from ..services.rating import QuoteRatingService, RatingEngine
from ..services.versioning import VersionStore


@define(frozen=True, slots=True)
class ServiceContainer:
    """Services sharing one document store."""

    settings: Settings
    store: DocumentStore
    versions: VersionStore
    change_sets: ChangeSetManager
    engine: RatingEngine
    quotes: QuoteRatingService

    @classmethod
    def build(
        cls, settings: Settings | None = None, store: DocumentStore | None = None
    ) -> "ServiceContainer":
        """Wire every service around a single document store."""
        settings = settings or get_settings()
        store = store or DocumentStore(EventBus())
        versions = VersionStore(store)
        engine = RatingEngine(
            final_rounding=RoundingRule(
                mode=settings.final_rounding_mode,
                precision=settings.final_rounding_precision,
            )
        )
        return cls(
            settings=settings,
            store=store,
            versions=versions,
            change_sets=ChangeSetManager(versions, settings=settings),
            engine=engine,
            quotes=QuoteRatingService(versions, engine),
        )


@beartype
def get_services(request: Request) -> ServiceContainer:
    """Provide the application's service container."""
    return request.app.state.services


Services = Annotated[ServiceContainer, Depends(get_services)]


@beartype
def get_version_store(services: Services) -> VersionStore:
    """Provide the version store."""
    return services.versions


@beartype
def get_change_set_manager(services: Services) -> ChangeSetManager:
    """Provide the change set manager."""
    return services.change_sets


@beartype
def get_rating_engine(services: Services) -> RatingEngine:
    """Provide the rating engine."""
    return services.engine


@beartype
def get_quote_rating_service(services: Services) -> QuoteRatingService:
    """Provide the published-program rating service."""
    return services.quotes


@beartype
def get_audit_context(
    x_actor: Annotated[str, Header(min_length=1, max_length=200, description="Acting user")],
) -> AuditContext:
    """Build the audit context of the current request."""
    return AuditContext.for_actor(x_actor)


# Parameter aliases carry no default, so @beartype endpoints stay checkable.
Versions = Annotated[VersionStore, Depends(get_version_store)]
ChangeSets = Annotated[ChangeSetManager, Depends(get_change_set_manager)]
Engine = Annotated[RatingEngine, Depends(get_rating_engine)]
Quotes = Annotated[QuoteRatingService, Depends(get_quote_rating_service)]
Audit = Annotated[AuditContext, Depends(get_audit_context)]
