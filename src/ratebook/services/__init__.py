# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Business logic service layer."""

from ratebook.core.result_types import Err, Ok, Result

from .change_sets import ChangeSetManager, PreflightValidator
from .rating import QuoteRatingService, RatingEngine, TableResolver
from .versioning import VersionStore

__all__ = [
    "Result",
    "Ok",
    "Err",
    "VersionStore",
    "ChangeSetManager",
    "PreflightValidator",
    "RatingEngine",
    "TableResolver",
    "QuoteRatingService",
]
