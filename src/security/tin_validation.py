"""
Taxpayer Identification Number format rules.

Pure functions, no side effects. Both SSN and EIN are 9 digits; dashes and
spaces are accepted as formatting and stripped, any other character makes the
candidate invalid.

SSN rules:
- Area (first 3) cannot be 000, 666, or 900-999
- Group (middle 2) cannot be 00
- Serial (last 4) cannot be 0000

EIN rules:
- Two-digit prefix must be an IRS campus code:
  01-06, 10-16, 20-27, 30-39, 40-48, 50-59, 60-68, 71-77, 80-88, 90-98
"""

import re
from enum import Enum
from typing import FrozenSet, Optional

_FORMATTING = re.compile(r"[-\s]")
_NINE_DIGITS = re.compile(r"^\d{9}$")


class TinType(str, Enum):
    """Kind of taxpayer identifier."""
    SSN = "ssn"
    EIN = "ein"


def _campus_codes() -> FrozenSet[int]:
    ranges = [(1, 6), (10, 16), (20, 27), (30, 39), (40, 48),
              (50, 59), (60, 68), (71, 77), (80, 88), (90, 98)]
    return frozenset(code for low, high in ranges for code in range(low, high + 1))


VALID_EIN_PREFIXES: FrozenSet[int] = _campus_codes()


def clean_tin(candidate: str) -> Optional[str]:
    """
    Normalize a TIN by removing dashes and spaces.

    Returns:
        The 9-digit string, or None if the candidate is not 9 digits after cleaning
    """
    if not isinstance(candidate, str):
        return None
    clean = _FORMATTING.sub("", candidate)
    if not _NINE_DIGITS.match(clean):
        return None
    return clean


def validate_ssn(candidate: str) -> bool:
    """
    Validate SSN format.

    Examples:
        >>> validate_ssn("123-45-6789")
        True
        >>> validate_ssn("666-12-3456")
        False
    """
    clean = clean_tin(candidate)
    if clean is None:
        return False

    area = int(clean[0:3])
    group = int(clean[3:5])
    serial = int(clean[5:9])

    if area == 0 or area == 666 or area >= 900:
        return False
    if group == 0:
        return False
    if serial == 0:
        return False
    return True


def validate_ein(candidate: str) -> bool:
    """
    Validate EIN format.

    Examples:
        >>> validate_ein("12-3456789")
        True
        >>> validate_ein("07-3456789")
        False
    """
    clean = clean_tin(candidate)
    if clean is None:
        return False
    return int(clean[0:2]) in VALID_EIN_PREFIXES


def validate_tin(candidate: str, tin_type: TinType) -> bool:
    """Dispatch to the SSN or EIN rule set."""
    if TinType(tin_type) is TinType.SSN:
        return validate_ssn(candidate)
    return validate_ein(candidate)


def mask_tin(last_four: str, tin_type: TinType) -> str:
    """
    Format a masked TIN for display. Only the last four digits are ever shown.

    Examples:
        >>> mask_tin("1234", TinType.SSN)
        'XXX-XX-1234'
        >>> mask_tin("1234", TinType.EIN)
        'XX-XXX1234'
    """
    if not isinstance(last_four, str) or not re.fullmatch(r"\d{4}", last_four):
        raise ValueError("last_four must be exactly 4 digits")
    if TinType(tin_type) is TinType.SSN:
        return f"XXX-XX-{last_four}"
    return f"XX-XXX{last_four}"
