"""Rating endpoints."""

from beartype import beartype
from fastapi import APIRouter

from ...models.rating import RatingResult
from ...schemas.requests import PublishedRateRequest, RateRequest
from ..dependencies import Audit, Engine, Quotes

router = APIRouter(prefix="/rating")


@router.post("/rate")
@beartype
async def rate(request: RateRequest, engine: Engine) -> RatingResult:
    """Rate an explicit step list against a context."""
    return engine.rate(request.steps, request.context, final_rounding=request.final_rounding)


@router.post("/rate-programs/{rate_program_id}/rate")
@beartype
async def rate_published_program(
    rate_program_id: str,
    request: PublishedRateRequest,
    quotes: Quotes,
    audit: Audit,
) -> RatingResult:
    """Rate with the rate program version effective at ``as_of``."""
    as_of = request.as_of or audit.now
    return await quotes.rate_published(rate_program_id, request.context, as_of)
