"""Rating against published rate program versions."""

from datetime import datetime

from beartype import beartype

from ...core.errors import NotFoundError
from ...core.logging_utils import get_logger
from ...models.payloads import RateProgramPayload, TablePayload
from ...models.rating import FactorStep, RatingContext, RatingResult, RatingTable
from ...models.versioning import EntityType
from ..versioning.version_store import VersionStore
from .rating_engine import RatingEngine

logger = get_logger(__name__)


class QuoteRatingService:
    """Loads the effective rate program and its tables, then runs the engine."""

    def __init__(self, versions: VersionStore, engine: RatingEngine | None = None) -> None:
        """Initialize quote rating service."""
        self._versions = versions
        self._engine = engine or RatingEngine()

    @beartype
    async def rate_published(
        self,
        rate_program_id: str,
        context: RatingContext,
        as_of: datetime,
    ) -> RatingResult:
        """Rate ``context`` with the rate program version effective at ``as_of``.

        Tables already present in ``context.tables`` are used as given; the
        others are read from their effective published versions.

        Raises:
            NotFoundError: No effective rate program or table version
        """
        program_version = await self._versions.get_effective_version(
            EntityType.RATE_PROGRAM, rate_program_id, as_of
        )
        if program_version is None:
            raise NotFoundError(
                "no-effective-version",
                f"Rate program {rate_program_id} has no published version effective "
                f"at {as_of.isoformat()}",
                {"rate_program_id": rate_program_id, "as_of": as_of.isoformat()},
            )
        program = RateProgramPayload.model_validate(program_version.payload)

        tables: dict[str, RatingTable] = dict(context.tables)
        for step in program.steps:
            if not isinstance(step, FactorStep) or not step.table or step.table in tables:
                continue
            table_version = await self._versions.get_effective_version(
                EntityType.TABLE, step.table, as_of
            )
            if table_version is None:
                raise NotFoundError(
                    "unknown-table",
                    f"Table {step.table} has no published version effective at "
                    f"{as_of.isoformat()}",
                    {"table": step.table, "rate_program_id": rate_program_id},
                )
            tables[step.table] = TablePayload.model_validate(table_version.payload)

        logger.debug(
            "Rating with rate program %s v%d (%d tables)",
            rate_program_id,
            program_version.version_number,
            len(tables),
        )
        return self._engine.rate(
            program.steps,
            context.model_copy(update={"tables": tables}),
            final_rounding=program.final_rounding,
        )
