"""
Property data validation rules — the default rule set.

Each rule bundles:
  - a predicate (``validate``) that returns True when the record is acceptable
  - a message builder for the failing case
  - optionally a ``fix`` that returns a normalized copy of the record

Rules never mutate the record they receive. Fixes return a new record via
``model_copy`` and hand back the original untouched when the field they
repair is missing.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from functools import partial

from .models import PropertyRecord, Severity
from .stats import compact_number


# ─── Constants ───────────────────────────────────────────────────────

REQUIRED_FIELDS: tuple[str, ...] = ("address", "city", "state", "zip_code", "property_type")

MAX_PROPERTY_VALUE = 100_000_000
MAX_SQUARE_FEET = 50_000
MIN_YEAR_BUILT = 1700
MIN_PRICE_PER_SQFT = 50
MAX_PRICE_PER_SQFT = 10_000

_ADDRESS_PATTERN = re.compile(r"\d+\s+[A-Za-z0-9\s.,'-]+", re.ASCII)
_ZIP_PATTERN = re.compile(r"\d{5}(-\d{4})?", re.ASCII)
_NON_DIGIT = re.compile(r"\D", re.ASCII)
_WORD_START = re.compile(r"\b\w", re.ASCII)


# ─── Rule Definition ─────────────────────────────────────────────────


@dataclass(frozen=True)
class ValidationRule:
    """A named, immutable check applied to every record."""

    id: str
    name: str
    severity: Severity
    validate: Callable[[PropertyRecord], bool]
    message: Callable[[PropertyRecord], str]
    fix: Callable[[PropertyRecord], PropertyRecord] | None = None
    description: str = ""

    @property
    def can_auto_fix(self) -> bool:
        return self.fix is not None


def default_rules(today: Callable[[], date] = date.today) -> list[ValidationRule]:
    """Build the stock rule set, in evaluation order.

    ``today`` is the clock the year-built rule and its fix measure against.
    """
    return [
        ValidationRule(
            id="required-fields",
            name="Required Fields Check",
            description="Validates that all required fields have values",
            severity=Severity.ERROR,
            validate=check_required_fields,
            message=lambda record: "Property is missing one or more required fields",
        ),
        ValidationRule(
            id="address-format",
            name="Address Format Check",
            description="Validates that the address follows standard format",
            severity=Severity.WARNING,
            validate=check_address_format,
            message=lambda record: f'Address format may be invalid: "{record.address}"',
            fix=fix_address_format,
        ),
        ValidationRule(
            id="value-range",
            name="Property Value Range Check",
            description="Validates that property values are within reasonable ranges",
            severity=Severity.WARNING,
            validate=check_value_range,
            message=lambda record: (
                f"Property value ${compact_number(record.price)} is outside the expected range"
            ),
        ),
        ValidationRule(
            id="sqft-range",
            name="Square Footage Range Check",
            description="Validates that square footage is within reasonable ranges",
            severity=Severity.WARNING,
            validate=check_sqft_range,
            message=lambda record: (
                f"Square footage {compact_number(record.square_feet)} is outside the expected range"
            ),
        ),
        ValidationRule(
            id="year-built-range",
            name="Year Built Range Check",
            description="Validates that year built is within reasonable range",
            severity=Severity.WARNING,
            validate=partial(check_year_built_range, today=today),
            message=lambda record: f"Year built {record.year_built} is outside the expected range",
            fix=partial(fix_year_built, today=today),
        ),
        ValidationRule(
            id="zipcode-format",
            name="Zip Code Format Check",
            description="Validates that zip code follows standard format",
            severity=Severity.WARNING,
            validate=check_zipcode_format,
            message=lambda record: f'Zip code format may be invalid: "{record.zip_code}"',
            fix=fix_zipcode_format,
        ),
        ValidationRule(
            id="price-sqft-consistency",
            name="Price to Square Foot Consistency",
            description="Checks if price per square foot is within reasonable range for the area",
            severity=Severity.WARNING,
            validate=check_price_sqft_consistency,
            message=_price_sqft_message,
        ),
    ]


# ─── Predicates ──────────────────────────────────────────────────────


def check_required_fields(record: PropertyRecord) -> bool:
    return all(getattr(record, field) not in (None, "") for field in REQUIRED_FIELDS)


def check_address_format(record: PropertyRecord) -> bool:
    """House number, whitespace, then street words. A missing address fails."""
    if not record.address:
        return False
    return _ADDRESS_PATTERN.fullmatch(record.address) is not None


def check_value_range(record: PropertyRecord) -> bool:
    if record.price is None:
        return True
    return 0 < record.price < MAX_PROPERTY_VALUE


def check_sqft_range(record: PropertyRecord) -> bool:
    if record.square_feet is None:
        return True
    return 0 < record.square_feet < MAX_SQUARE_FEET


def check_year_built_range(record: PropertyRecord, today: Callable[[], date] = date.today) -> bool:
    if record.year_built is None:
        return True
    return MIN_YEAR_BUILT < record.year_built <= today().year


def check_zipcode_format(record: PropertyRecord) -> bool:
    if not record.zip_code:
        return True
    return _ZIP_PATTERN.fullmatch(record.zip_code) is not None


def check_price_sqft_consistency(record: PropertyRecord) -> bool:
    """Only meaningful when both price and a non-zero square footage exist."""
    if not record.price or not record.square_feet:
        return True
    price_per_sqft = record.price / record.square_feet
    return MIN_PRICE_PER_SQFT < price_per_sqft < MAX_PRICE_PER_SQFT


# ─── Fixes ───────────────────────────────────────────────────────────


def fix_address_format(record: PropertyRecord) -> PropertyRecord:
    """Collapse whitespace runs and capitalize the first letter of each word."""
    if not record.address:
        return record
    collapsed = re.sub(r"\s+", " ", record.address)
    normalized = _WORD_START.sub(lambda m: m.group(0).upper(), collapsed)
    return record.model_copy(update={"address": normalized})


def fix_year_built(record: PropertyRecord, today: Callable[[], date] = date.today) -> PropertyRecord:
    """Clamp year built into [1700, current year]."""
    if not record.year_built:
        return record
    current_year = today().year
    fixed = min(max(record.year_built, MIN_YEAR_BUILT), current_year)
    return record.model_copy(update={"year_built": fixed})


def fix_zipcode_format(record: PropertyRecord) -> PropertyRecord:
    """Strip non-digits and re-hyphenate as ZIP or ZIP+4; other lengths stay as-is."""
    if not record.zip_code:
        return record

    digits = _NON_DIGIT.sub("", record.zip_code)
    formatted = record.zip_code
    if len(digits) == 5:
        formatted = digits
    elif len(digits) == 9:
        formatted = f"{digits[:5]}-{digits[5:]}"

    return record.model_copy(update={"zip_code": formatted})


# ─── Internal Helpers ────────────────────────────────────────────────


def _price_sqft_message(record: PropertyRecord) -> str:
    if not record.price or not record.square_feet:
        return ""
    price_per_sqft = record.price / record.square_feet
    return (
        f"Price per square foot (${price_per_sqft:.2f}) is unusual "
        f"for this type of property"
    )

