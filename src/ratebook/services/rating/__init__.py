"""Rating services package.

This package provides the premium calculation core:
- Rating table cell resolution (discrete and range dimensions)
- Step sequence validation
- Factor/operand evaluation with rounding and an audit trace
- Rating against published rate program versions
"""

from .quote_rating import QuoteRatingService
from .rating_engine import RatingEngine
from .rounding import apply_rounding
from .sequence import validate_sequence
from .table_resolver import TableLookup, TableResolver

__all__ = [
    "RatingEngine",
    "QuoteRatingService",
    "TableResolver",
    "TableLookup",
    "apply_rounding",
    "validate_sequence",
]
