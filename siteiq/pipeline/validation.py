"""
Row and header validation against a resolved schema.

Both functions return (warnings, errors) lists of human-readable strings.
Validation never raises on bad data; callers decide what an error means.
"""
import math
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from siteiq.pipeline.schema import FieldDef, ResolvedSchema

Messages = Tuple[List[str], List[str]]


def validate_headers(headers: Iterable[str], schema: ResolvedSchema) -> Messages:
    """Required fields and the identifier column must be present; extras only warn."""
    headers = list(headers)
    present = set(headers)
    warnings, errors = [], []

    for name, fd in schema.fields.items():
        if fd.required and name not in present:
            errors.append(f"required field '{name}' not found in headers")

    if schema.identifier_column not in present:
        errors.append(f"identifier column '{schema.identifier_column}' not found in headers")

    for header in headers:
        if header == schema.identifier_column or header in schema.fields:
            continue
        warnings.append(
            f"unexpected column '{header}' found in data; will be included in record data but not validated"
        )

    return warnings, errors


def validate_row(row: Mapping[str, Any], schema: ResolvedSchema, row_num: int) -> Messages:
    """Check every defined field's value in one row against its type and bounds."""
    warnings, errors = [], []

    for name, fd in schema.fields.items():
        if name not in row:
            if fd.required:
                errors.append(f"row {row_num}: required field '{name}' is missing")
            continue

        value = row[name]
        if _is_blank(value) and not fd.required:
            continue

        message = _check_value(name, value, fd, row_num)
        if message:
            errors.append(message)

    return warnings, errors


# ── Per-type checks ───────────────────────────────────────────────────────────

def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value == '')


def parse_number(value) -> Optional[float]:
    """Finite float from a number or numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _fmt(number: float):
    return int(number) if number.is_integer() else number


def _check_bounds(name, number, fd: FieldDef, row_num) -> Optional[str]:
    if fd.min is not None and number < fd.min:
        return f"row {row_num}: field '{name}' must be >= {_fmt(fd.min)}, got {_fmt(number)}"
    if fd.max is not None and number > fd.max:
        return f"row {row_num}: field '{name}' must be <= {_fmt(fd.max)}, got {_fmt(number)}"
    return None


def _check_value(name: str, value: Any, fd: FieldDef, row_num: int) -> Optional[str]:
    if fd.type == 'text':
        return None

    if fd.type == 'identifier':
        if _is_blank(value) or not str(value).strip():
            return f"row {row_num}: field '{name}' (identifier) cannot be empty"
        return None

    number = parse_number(value)
    if number is None:
        return f"row {row_num}: field '{name}' must be a valid number, got '{value}'"

    if fd.type == 'percentage':
        if number < 0 or number > 100:
            return f"row {row_num}: field '{name}' must be between 0 and 100, got {_fmt(number)}"
        return None

    if fd.type in ('integer', 'population') and not number.is_integer():
        return f"row {row_num}: field '{name}' must be a whole number, got {_fmt(number)}"

    if fd.type == 'population':
        if number < 0:
            return f"row {row_num}: field '{name}' must be non-negative, got {_fmt(number)}"
        return None

    # index, numeric, integer
    return _check_bounds(name, number, fd, row_num)
