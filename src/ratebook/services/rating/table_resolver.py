# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Rating table cell resolution.

Lookups are exact: a combination that is absent from the sparse ``cells`` map
raises ``NotFoundError("missing-table-entry")``. There is no default factor and
no nearest-neighbour fallback, because either would silently misprice.
"""

from collections.abc import Collection, Mapping
from decimal import Decimal, InvalidOperation
from itertools import product
from typing import Any

from beartype import beartype
from pydantic import Field

from ...core.errors import NotFoundError, ValidationError
from ...models.base import BaseModelConfig
from ...models.rating import DiscreteDimension, RangeDimension, RatingTable

MISSING_TABLE_ENTRY = "missing-table-entry"


@beartype
class TableLookup(BaseModelConfig):
    """Resolved cell of a rating table."""

    value: Decimal = Field(..., description="Cell factor")
    key: str = Field(..., description="Composite cell key that matched")


class TableResolver:
    """Stateless resolver for discrete and range table dimensions."""

    @beartype
    def resolve(self, table: RatingTable, dimension_values: Mapping[str, Any]) -> TableLookup:
        """Resolve the cell addressed by ``dimension_values``.

        Args:
            table: Table to read
            dimension_values: Raw context value per dimension name

        Returns:
            The matching cell factor and its composite key

        Raises:
            ValidationError: A dimension value is missing or not numeric for a
                range dimension
            NotFoundError: No cell exists for the combination
        """
        parts: list[str] = []
        for dimension in table.dimensions:
            if dimension.name not in dimension_values or dimension_values[dimension.name] is None:
                raise ValidationError(
                    "missing-dimension-value",
                    f"No value supplied for dimension {dimension.name} of table {table.name}",
                    {"table": table.name, "dimension": dimension.name},
                )
            parts.append(self._match(table, dimension, dimension_values[dimension.name]))

        key = RatingTable.cell_key(parts)
        if key not in table.cells:
            raise NotFoundError(
                MISSING_TABLE_ENTRY,
                f"Table {table.name} has no entry for {key}",
                {"table": table.name, "key": key},
            )
        return TableLookup(value=table.cells[key], key=key)

    @beartype
    def factor(self, table: RatingTable, dimension_values: Mapping[str, Any]) -> Decimal:
        """Resolve a cell and return only its factor."""
        return self.resolve(table, dimension_values).value

    @beartype
    def missing_combinations(
        self,
        table: RatingTable,
        restrict: Mapping[str, Collection[str]] | None = None,
    ) -> list[str]:
        """List cell keys absent from ``table``.

        ``restrict`` narrows a dimension (by name) to the given values, e.g.
        a state dimension to the jurisdictions being published. Values that
        the dimension does not declare are ignored.
        """
        restrict = restrict or {}
        axes: list[list[str]] = []
        for dimension in table.dimensions:
            allowed = restrict.get(dimension.name)
            if allowed is None:
                axes.append(list(dimension.values))
            else:
                axes.append([value for value in dimension.values if value in allowed])
        return [
            key
            for key in (RatingTable.cell_key(list(combo)) for combo in product(*axes))
            if key not in table.cells
        ]

    def _match(
        self,
        table: RatingTable,
        dimension: DiscreteDimension | RangeDimension,
        raw: Any,
    ) -> str:
        if isinstance(dimension, RangeDimension):
            number = coerce_decimal(raw)
            if number is None:
                raise ValidationError(
                    "non-numeric-range-value",
                    f"Range dimension {dimension.name} of table {table.name} "
                    f"needs a number, got {raw!r}",
                    {"table": table.name, "dimension": dimension.name},
                )
            for bucket in dimension.ranges:
                if bucket.contains(number):
                    return bucket.label
        else:
            wanted = str(raw).strip()
            wanted_number = coerce_decimal(raw)
            for value in dimension.values:
                if value == wanted:
                    return value
                if wanted_number is not None and coerce_decimal(value) == wanted_number:
                    return value

        raise NotFoundError(
            MISSING_TABLE_ENTRY,
            f"Table {table.name} has no {dimension.name} entry for {raw!r}",
            {"table": table.name, "dimension": dimension.name, "value": raw},
        )


@beartype
def coerce_decimal(raw: Any) -> Decimal | None:
    """Interpret a context value as a finite decimal, or None when it is not numeric."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, (int, float)):
        return Decimal(str(raw))
    if isinstance(raw, str):
        try:
            number = Decimal(raw.strip().replace(",", ""))
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None
