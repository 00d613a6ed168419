"""Field and config validation against a ConfigSchema.

Mirrors the server's ValidateConfig rule-for-rule so that a config accepted
here is never rejected at save time for a schema reason (and vice versa).

validate_field()  — one (name, value) pair against one PropertySchema.
                    Ordered checks, first failure wins:
                      1. required + empty         → "required"
                      2. optional + empty         → valid, nothing else checked
                      3. int/float                → "type" | "min" | "max"
                      4. enum                     → "enum"
                      5. bool                     → "type"
                      6. anything else            → valid
validate_config() — every property of a schema, in declaration order, all
                    errors collected in a single pass.
merge_errors()    — combine local errors with server-reported ones; the
                    server wins for any field it reports on.
coerce_value()    — the single place raw config values are interpreted
                    according to PropertySchema.type.

Validation errors are data: nothing in this module raises for bad input.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Iterable, Mapping

from flowbuilder.schema import ERROR_CODES, ConfigSchema, PropertySchema, ValidationError

logger = logging.getLogger(__name__)

# Leading numeric literal, the way the server (and the editor) parse numbers
# typed as strings: "14550" → 14550, "12abc" → 12, "abc" → no match.
_NUMBER_PREFIX_RE = re.compile(
    r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)

_BOOL_LITERALS: dict[str, bool] = {"true": True, "false": False}


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def is_empty(value: Any) -> bool:
    """True for an absent value: None or the empty string."""
    return value is None or (isinstance(value, str) and value == "")


def _parse_number(value: Any) -> float | None:
    """Coerce a config value to a number. Returns None when it is not one.

    Strings are parsed by leading numeric prefix; booleans count as 1/0;
    NaN is never a number.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_PREFIX_RE.match(value.lstrip())
        if match is None:
            return None
        number = float(match.group(0).replace("Infinity", "inf"))
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _format_number(number: float | int) -> str:
    """Render a bound the way the wire does: 65535, not 65535.0."""
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)


def _stringify(value: Any) -> str:
    """Stringify a config value for enum membership (JSON-style literals)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_number(value)
    return str(value)


def coerce_value(value: Any, schema: PropertySchema) -> Any:
    """Interpret a raw config value according to ``schema.type``.

    Returns the typed value (int, float, bool, str) or the value unchanged
    when it cannot be coerced or the type carries no scalar meaning
    (ports, object, unknown). Empty values are returned unchanged.
    """
    if is_empty(value):
        return value

    if schema.is_numeric:
        number = _parse_number(value)
        if number is None:
            return value
        if schema.type == "int" and number.is_integer():
            return int(number)
        return number

    if schema.type == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value in _BOOL_LITERALS:
            return _BOOL_LITERALS[value]
        return value

    if schema.type in ("enum", "string"):
        return _stringify(value)

    return value


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def validate_field(
    field_name: str,
    value: Any,
    schema: PropertySchema,
    is_required: bool,
) -> ValidationError | None:
    """Validate a single field value. Returns ValidationError, or None if valid.

    The value is interpreted with coerce_value() first, so a value that
    validates here coerces to the type the schema declares.
    """
    if is_empty(value):
        if is_required:
            return ValidationError(field_name, "This field is required", "required")
        return None

    typed = coerce_value(value, schema)

    if schema.is_numeric:
        if (
            isinstance(typed, bool)
            or not isinstance(typed, (int, float))
            or math.isnan(typed)
        ):
            return ValidationError(field_name, "Must be a valid number", "type")
        if schema.minimum is not None and typed < schema.minimum:
            return ValidationError(
                field_name, f"Must be >= {_format_number(schema.minimum)}", "min"
            )
        if schema.maximum is not None and typed > schema.maximum:
            return ValidationError(
                field_name, f"Must be <= {_format_number(schema.maximum)}", "max"
            )

    if schema.type == "enum" and schema.enum is not None:
        if typed not in schema.enum:
            return ValidationError(
                field_name, f"Must be one of: {', '.join(schema.enum)}", "enum"
            )

    if schema.type == "bool" and not isinstance(typed, bool):
        return ValidationError(field_name, "Must be true or false", "type")

    return None


# ---------------------------------------------------------------------------
# Config validation
# ---------------------------------------------------------------------------


def validate_config(
    config: Mapping[str, Any] | None,
    schema: ConfigSchema,
) -> list[ValidationError]:
    """Validate every property of ``schema`` against ``config``.

    Returns one error per failing property (empty list = valid), in
    property declaration order. Required names with no property definition
    are checked for required-ness afterwards, in ``required`` order.
    """
    config = config or {}
    errors: list[ValidationError] = []

    for name, prop in schema.properties.items():
        error = validate_field(name, config.get(name), prop, schema.is_required(name))
        if error is not None:
            errors.append(error)

    for name in schema.orphan_required():
        if is_empty(config.get(name)):
            errors.append(ValidationError(name, "This field is required", "required"))

    if errors:
        logger.debug(
            "Config validation found %d error(s): %s",
            len(errors), ", ".join(f"{e.field}={e.code}" for e in errors),
        )
    return errors


def merge_errors(
    local: Iterable[ValidationError],
    external: Iterable[ValidationError],
) -> list[ValidationError]:
    """Merge local errors with server-reported errors.

    The server is authoritative at save time: every external error for a
    field replaces all local errors for that field, taking the position of
    the first one. External errors for fields with no local error are
    appended in the order the server reported them.
    """
    external = list(external)
    foreign = sorted({e.code for e in external if e.code not in ERROR_CODES})
    if foreign:
        logger.debug("Passing through server error code(s) %s unchanged", ", ".join(foreign))
    external_by_field: dict[str, list[ValidationError]] = {}
    for error in external:
        external_by_field.setdefault(error.field, []).append(error)

    merged: list[ValidationError] = []
    placed: set[str] = set()
    for error in local:
        if error.field not in external_by_field:
            merged.append(error)
        elif error.field not in placed:
            merged.extend(external_by_field[error.field])
            placed.add(error.field)

    merged.extend(e for e in external if e.field not in placed)
    return merged


def errors_by_field(errors: Iterable[ValidationError]) -> dict[str, ValidationError]:
    """Index errors by field name, keeping the first error reported per field."""
    indexed: dict[str, ValidationError] = {}
    for error in errors:
        indexed.setdefault(error.field, error)
    return indexed
