# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Ratebook - versioned product configuration and rating engine.

Draft configuration (products, coverages, forms, rules, rate programs and
rating tables) moves through change sets into published, ratable versions;
the rating engine evaluates published rate programs into premiums.
"""

__version__ = "0.1.0"
