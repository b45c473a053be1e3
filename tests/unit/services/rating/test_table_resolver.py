"""Tests for rating table resolution."""

from decimal import Decimal

import pytest

from ratebook.core.errors import NotFoundError, ValidationError
from ratebook.models.rating import DiscreteDimension, RangeDimension, RatingTable
from ratebook.services.rating.table_resolver import TableResolver, coerce_decimal


@pytest.fixture
def resolver() -> TableResolver:
    return TableResolver()


@pytest.fixture
def building_table() -> RatingTable:
    """Construction class by building value band."""
    return RatingTable(
        name="BuildingRate",
        dimensions=[
            DiscreteDimension(name="construction", values=["frame", "masonry"]),
            RangeDimension(
                name="buildingValue", values=["0-25000", "25001-50000", "50001+"]
            ),
        ],
        cells={
            "frame|0-25000": Decimal("1.20"),
            "frame|25001-50000": Decimal("1.10"),
            "frame|50001+": Decimal("1.00"),
            "masonry|0-25000": Decimal("0.90"),
        },
    )


class TestResolve:
    """Test exact cell resolution."""

    def test_discrete_and_range_lookup(self, resolver, building_table):
        """Both dimension kinds contribute to the composite key."""
        lookup = resolver.resolve(
            building_table, {"construction": "frame", "buildingValue": 30000}
        )
        assert lookup.key == "frame|25001-50000"
        assert lookup.value == Decimal("1.10")

    def test_open_ended_range(self, resolver, building_table):
        """'50001+' has no upper bound."""
        assert resolver.factor(
            building_table, {"construction": "frame", "buildingValue": "2,500,000"}
        ) == Decimal("1.00")

    def test_range_bounds_are_inclusive(self, resolver, building_table):
        """Both ends of a parsed label belong to the bucket."""
        assert resolver.resolve(
            building_table, {"construction": "frame", "buildingValue": 25000}
        ).key == "frame|0-25000"
        assert resolver.resolve(
            building_table, {"construction": "frame", "buildingValue": 25001}
        ).key == "frame|25001-50000"

    def test_value_between_buckets(self, resolver, building_table):
        """A value falling in a gap between buckets has no entry."""
        with pytest.raises(NotFoundError) as exc_info:
            resolver.resolve(
                building_table, {"construction": "frame", "buildingValue": "25000.5"}
            )
        assert exc_info.value.code == "missing-table-entry"

    def test_absent_sparse_cell(self, resolver, building_table):
        """Declared values whose combination has no cell are not defaulted."""
        with pytest.raises(NotFoundError) as exc_info:
            resolver.resolve(
                building_table, {"construction": "masonry", "buildingValue": 60000}
            )
        assert exc_info.value.code == "missing-table-entry"
        assert exc_info.value.context["key"] == "masonry|50001+"

    def test_missing_dimension_value(self, resolver, building_table):
        """Every dimension needs a value."""
        with pytest.raises(ValidationError) as exc_info:
            resolver.resolve(building_table, {"construction": "frame", "buildingValue": None})
        assert exc_info.value.code == "missing-dimension-value"

    def test_non_numeric_range_value(self, resolver, building_table):
        """Range dimensions only accept numbers."""
        with pytest.raises(ValidationError) as exc_info:
            resolver.resolve(building_table, {"construction": "frame", "buildingValue": "big"})
        assert exc_info.value.code == "non-numeric-range-value"

    def test_numeric_discrete_values_match_by_number(self, resolver):
        """A discrete value of 500 matches the label '500'."""
        table = RatingTable(
            name="Deductible",
            dimensions=[DiscreteDimension(name="deductible", values=[500, 1000])],
            cells={"500": Decimal("1.0"), "1000": Decimal("0.95")},
        )
        assert resolver.factor(table, {"deductible": 1000}) == Decimal("0.95")
        assert resolver.factor(table, {"deductible": "500.0"}) == Decimal("1.0")


class TestMissingCombinations:
    """Test the completeness scan used by preflight."""

    def test_lists_every_absent_key(self, resolver, building_table):
        """The cartesian product minus the populated cells."""
        assert resolver.missing_combinations(building_table) == [
            "masonry|25001-50000",
            "masonry|50001+",
        ]

    def test_restricted_dimension(self, resolver, building_table):
        """Restricting a dimension narrows the scan."""
        assert resolver.missing_combinations(building_table, {"construction": ["frame"]}) == []


class TestCoerceDecimal:
    """Test numeric interpretation of context values."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (10, Decimal("10")),
            (2.5, Decimal("2.5")),
            ("1,250.75", Decimal("1250.75")),
            (Decimal("3"), Decimal("3")),
            (True, None),
            ("NaN", None),
            ("abc", None),
            (None, None),
        ],
    )
    def test_coercion(self, raw, expected):
        """Booleans, non-finite and non-numeric values are not numbers."""
        assert coerce_decimal(raw) == expected
