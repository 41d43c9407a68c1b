"""Declarative column tables and shared value parsers for imports.

Each importer declares its columns up front as ``FieldSpec`` entries, so
which columns are required, optional or restricted to a fixed set of
values is known without inspecting any schema at runtime.
"""

import math
from collections.abc import Iterable
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel

MAX_AMOUNT = 999_999_999


class FieldError(ValueError):
    """A cell value failed its field rule; the message is user facing."""

    pass


class Requirement(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    ENUMERATED = "enumerated"


class FieldSpec(BaseModel):
    """One importable column.

    ``aliases`` are matched against lowercased header names.  ``label``
    is the header written to templates (defaults to the first alias).
    """

    name: str
    aliases: tuple[str, ...]
    requirement: Requirement = Requirement.OPTIONAL
    allowed_values: tuple[str, ...] = ()
    default: str | None = None
    label: str | None = None

    @property
    def header(self) -> str:
        """Header written to templates."""
        return self.label or self.aliases[0]


def fields_by_requirement(specs: Iterable[FieldSpec]) -> dict[Requirement, list[str]]:
    """Group field names by requirement, in declaration order."""
    grouped: dict[Requirement, list[str]] = {r: [] for r in Requirement}
    for spec in specs:
        grouped[spec.requirement].append(spec.name)
    return grouped


def parse_date(value: str, label: str = "date") -> str:
    """Parse an ISO calendar date (or datetime) into ``YYYY-MM-DD``."""
    text = value.strip()
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        raise FieldError(f"Invalid {label} format: {value}") from None


def parse_choice(value: str, spec: FieldSpec) -> str:
    """Case-insensitive match against ``spec.allowed_values``."""
    candidate = value.strip().lower()
    if candidate in spec.allowed_values:
        return candidate
    raise FieldError(
        f"Invalid {spec.name}. Must be one of: {', '.join(spec.allowed_values)}"
    )


def parse_number(value: str) -> float:
    """Parse a finite decimal number."""
    try:
        number = float(value.strip())
    except ValueError:
        raise FieldError(f"Not a number: {value}") from None
    if not math.isfinite(number):
        raise FieldError(f"Not a number: {value}")
    return number


def parse_amount(value: str, label: str = "Amount", maximum: float = MAX_AMOUNT) -> float:
    """Parse a strictly positive number not above ``maximum``."""
    try:
        amount = parse_number(value)
    except FieldError:
        raise FieldError(f"{label} must be a positive number") from None
    if amount <= 0:
        raise FieldError(f"{label} must be a positive number")
    if amount > maximum:
        raise FieldError(f"{label} is too large (max {maximum:,.0f})")
    return amount


def parse_positive_int(value: str, label: str = "Quantity") -> int:
    """Parse a strictly positive whole number."""
    try:
        number = int(value.strip())
    except ValueError:
        raise FieldError(f"{label} must be a positive integer") from None
    if number <= 0:
        raise FieldError(f"{label} must be a positive integer")
    return number


def check_length(value: str, label: str, maximum: int) -> str:
    if len(value) > maximum:
        raise FieldError(f"{label} must not exceed {maximum} characters")
    return value
