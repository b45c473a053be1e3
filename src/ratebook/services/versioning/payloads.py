"""Payload boundary validation for versioned entities.

Every payload entering the Version Store is checked against the schema of its
entity type and stored in normalized JSON form. Fields the core does not
inspect pass through unchanged.
"""

from typing import Any

from beartype import beartype
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ...core.errors import ValidationError
from ...core.result_types import Err, Ok, Result
from ...models.payloads import (
    CoveragePayload,
    FormPayload,
    ProductPayload,
    RateProgramPayload,
    RulePayload,
    TablePayload,
)
from ...models.versioning import EntityType

PAYLOAD_SCHEMAS: dict[EntityType, type[BaseModel]] = {
    EntityType.PRODUCT: ProductPayload,
    EntityType.COVERAGE: CoveragePayload,
    EntityType.FORM: FormPayload,
    EntityType.RULE: RulePayload,
    EntityType.RATE_PROGRAM: RateProgramPayload,
    EntityType.TABLE: TablePayload,
}


@beartype
def check_payload(
    entity_type: EntityType, payload: dict[str, Any]
) -> Result[dict[str, Any], list[str]]:
    """Validate a payload and return its normalized form.

    Returns:
        Ok with the normalized payload, or Err with one message per problem
    """
    schema = PAYLOAD_SCHEMAS[entity_type]
    try:
        model = schema.model_validate(payload)
    except PydanticValidationError as exc:
        return Err(
            [
                f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
                for error in exc.errors()
            ]
        )
    return Ok(model.model_dump(mode="json"))


@beartype
def validate_payload(entity_type: EntityType, payload: dict[str, Any]) -> dict[str, Any]:
    """Validate a payload, raising ``ValidationError`` when it is rejected."""
    result = check_payload(entity_type, payload)
    if result.is_err():
        problems = result.unwrap_err()
        raise ValidationError(
            "invalid-payload",
            f"Invalid {entity_type.value} payload: " + "; ".join(problems),
            {"entity_type": entity_type.value, "errors": problems},
        )
    return result.unwrap()
