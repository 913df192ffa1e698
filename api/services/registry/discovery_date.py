"""Discovery-date validation.

A discovery date is either a bare year (``YYYY``) or a calendar date
(``YYYY-MM-DD``). Its year is frozen into the BVC ID when a vulnerability is
first registered.

Two entry points with deliberately different failure behaviour:

- ``validate_discovery_date`` raises on bad input and guards writes.
- ``extract_year`` returns 0 on bad input and is used to decorate reads.

February is capped at 29 days whatever the year, so ``2023-02-29`` is
accepted. The ledger applies the same rule on its side.
"""

import re

from api.services.registry.errors import InputValidationError

MIN_YEAR = 1990
MAX_YEAR = 9999

_SHAPE = re.compile(r"^[0-9]{4}(-[0-9]{2}-[0-9]{2})?$")

# Months not listed allow 31 days.
_DAY_CAPS = {2: 29, 4: 30, 6: 30, 9: 30, 11: 30}

FIELD = "discovery_date"


def check_discovery_date(date: str | None) -> tuple[bool, str]:
    """Validate a discovery date without raising.

    Args:
        date: ``YYYY`` or ``YYYY-MM-DD``

    Returns:
        ``(True, "")`` when valid, otherwise ``(False, reason)``
    """
    if not date:
        return False, "Discovery date is required"
    if len(date) not in (4, 10) or not _SHAPE.match(date):
        return False, "Discovery date must be in YYYY-MM-DD or YYYY format"

    year = int(date[:4])
    if year < MIN_YEAR or year > MAX_YEAR:
        return False, f"Year must be between {MIN_YEAR} and {MAX_YEAR}"

    if len(date) == 4:
        return True, ""

    month = int(date[5:7])
    day = int(date[8:10])
    if month < 1 or month > 12:
        return False, "Month must be between 1 and 12"
    cap = _DAY_CAPS.get(month, 31)
    if day < 1 or day > cap:
        return False, f"Day must be between 1 and {cap} for month {month}"

    return True, ""


def validate_discovery_date(date: str | None, field: str = FIELD) -> int:
    """Validate a discovery date and return its year.

    Raises:
        InputValidationError: With the reason, naming ``field``
    """
    valid, reason = check_discovery_date(date)
    if not valid:
        raise InputValidationError(f"Invalid {field}: {reason}", field=field)
    return int(date[:4])


def extract_year(date: str | None) -> int:
    """Best-effort year extraction; 0 for empty or malformed input."""
    if not date or len(date) not in (4, 10) or not _SHAPE.match(date):
        return 0
    return int(date[:4])
