"""Click Custom Types for the reconciliation CLI

Domain-specific type validators for Click commands.
Provides early validation at CLI parsing time with clear error messages.
"""

from datetime import date

import click

from database.models import RESOLUTION_STATUSES
from pipeline.matching import canonical_ordinance_reference, canonical_resolution_reference


class OrdinanceNumberType(click.ParamType):
    """Canonical ordinance number from user input

    Valid examples:
    - 724
    - 2024-15
    - "Ordinance No. 2024–15" (normalized to 2024-15)
    """

    name = "ordinance_number"

    def convert(self, value, param, ctx):
        if not value or not str(value).strip():
            self.fail("ordinance number cannot be empty", param, ctx)

        number = canonical_ordinance_reference(str(value))
        if not number:
            self.fail(
                f"{value!r} is not an ordinance number (e.g., 724, 2024-15)",
                param,
                ctx
            )
        return number


class ResolutionNumberType(click.ParamType):
    """Canonical resolution number (e.g., 25-040, 2024-112)"""

    name = "resolution_number"

    def convert(self, value, param, ctx):
        number = canonical_resolution_reference(str(value or ""))
        if not number:
            self.fail("resolution number cannot be empty", param, ctx)
        return number


class ResolutionStatusType(click.ParamType):
    """One of the resolution statuses"""

    name = "resolution_status"

    def convert(self, value, param, ctx):
        status = str(value).strip().lower()
        if status not in RESOLUTION_STATUSES:
            self.fail(
                f"{value!r} is not a resolution status. "
                f"Choose from: {', '.join(sorted(RESOLUTION_STATUSES))}",
                param,
                ctx
            )
        return status


class ISODateType(click.ParamType):
    """Calendar date in YYYY-MM-DD form"""

    name = "date"

    def convert(self, value, param, ctx):
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value).strip())
        except ValueError:
            self.fail(f"{value!r} is not a date (expected YYYY-MM-DD)", param, ctx)


ORDINANCE_NUMBER = OrdinanceNumberType()
RESOLUTION_NUMBER = ResolutionNumberType()
RESOLUTION_STATUS = ResolutionStatusType()
ISO_DATE = ISODateType()
