"""Validate decoded JSON values against an OpenAPI schema subset.

Supported keywords: type (single or list), nullable, enum, const, required,
properties, additionalProperties, items, minItems, maxItems, uniqueItems,
minLength, maxLength, pattern, minimum, maximum, exclusiveMinimum,
exclusiveMaximum, multipleOf, allOf, anyOf, oneOf and not. Unknown keywords
(format, discriminator, xml, ...) are ignored.
"""

import re
from typing import Any

from .models import ValidationError

_TYPE_NAMES = ("null", "boolean", "integer", "number", "string", "array", "object")


def json_type(value: Any) -> str:
    """Return the JSON type name of a decoded value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def validate_value(value: Any, schema: dict[str, Any] | None, path: str) -> list[ValidationError]:
    """Return one ValidationError per violated constraint."""
    errors: list[ValidationError] = []
    if schema:
        _check(value, schema, path, errors)
    return errors


def is_valid(value: Any, schema: dict[str, Any] | None) -> bool:
    return not validate_value(value, schema, "")


def _allowed_types(schema: dict[str, Any]) -> list[str]:
    declared = schema.get("type")
    types = [declared] if isinstance(declared, str) else list(declared or [])
    if types and schema.get("nullable"):
        types.append("null")
    return [t for t in types if t in _TYPE_NAMES]


def _type_matches(value: Any, expected: str) -> bool:
    actual = json_type(value)
    if expected == actual:
        return True
    if expected == "number" and actual == "integer":
        return True
    return expected == "integer" and actual == "number" and float(value).is_integer()


def _same_value(value: Any, other: Any) -> bool:
    """JSON equality: booleans never equal numbers."""
    if isinstance(value, bool) or isinstance(other, bool):
        return isinstance(value, bool) and isinstance(other, bool) and value == other
    if isinstance(value, list) and isinstance(other, list):
        return len(value) == len(other) and all(_same_value(a, b) for a, b in zip(value, other))
    if isinstance(value, dict) and isinstance(other, dict):
        return value.keys() == other.keys() and all(_same_value(value[k], other[k]) for k in value)
    return value == other


def _check(value: Any, schema: dict[str, Any], path: str, errors: list[ValidationError]) -> None:
    types = _allowed_types(schema)
    if value is None and (schema.get("nullable") or "null" in types):
        return
    if types and not any(_type_matches(value, t) for t in types):
        errors.append(ValidationError(path, f"must be {' or '.join(types)}"))
        return

    if "enum" in schema and not any(_same_value(value, option) for option in schema["enum"]):
        errors.append(ValidationError(path, f"must be one of {schema['enum']!r}"))
    if "const" in schema and not _same_value(value, schema["const"]):
        errors.append(ValidationError(path, f"must be {schema['const']!r}"))

    kind = json_type(value)
    if kind == "object":
        _check_object(value, schema, path, errors)
    elif kind == "array":
        _check_array(value, schema, path, errors)
    elif kind == "string":
        _check_string(value, schema, path, errors)
    elif kind in ("integer", "number"):
        _check_number(value, schema, path, errors)

    _check_combinators(value, schema, path, errors)


def _check_object(value: dict, schema: dict[str, Any], path: str, errors: list[ValidationError]) -> None:
    properties = schema.get("properties") or {}
    for name in schema.get("required") or []:
        prop = properties.get(name) or {}
        if name not in value and not prop.get("readOnly"):
            errors.append(ValidationError(_join(path, name), "is required"))

    additional = schema.get("additionalProperties", True)
    for name, item in value.items():
        if name in properties:
            _check(item, properties[name], _join(path, name), errors)
        elif additional is False:
            errors.append(ValidationError(_join(path, name), "is not an allowed property"))
        elif isinstance(additional, dict):
            _check(item, additional, _join(path, name), errors)


def _check_array(value: list, schema: dict[str, Any], path: str, errors: list[ValidationError]) -> None:
    if "minItems" in schema and len(value) < schema["minItems"]:
        errors.append(ValidationError(path, f"must have at least {schema['minItems']} items"))
    if "maxItems" in schema and len(value) > schema["maxItems"]:
        errors.append(ValidationError(path, f"must have at most {schema['maxItems']} items"))
    if schema.get("uniqueItems"):
        seen: list[Any] = []
        for item in value:
            if item in seen:
                errors.append(ValidationError(path, "must not contain duplicate items"))
                break
            seen.append(item)
    items = schema.get("items")
    if isinstance(items, dict) and items:
        for index, item in enumerate(value):
            _check(item, items, f"{path}[{index}]", errors)


def _check_string(value: str, schema: dict[str, Any], path: str, errors: list[ValidationError]) -> None:
    if "minLength" in schema and len(value) < schema["minLength"]:
        errors.append(ValidationError(path, f"must be at least {schema['minLength']} characters"))
    if "maxLength" in schema and len(value) > schema["maxLength"]:
        errors.append(ValidationError(path, f"must be at most {schema['maxLength']} characters"))
    pattern = schema.get("pattern")
    if isinstance(pattern, str):
        try:
            matched = re.search(pattern, value) is not None
        except re.error:
            # ECMA-only patterns are not enforced
            matched = True
        if not matched:
            errors.append(ValidationError(path, f"must match pattern {pattern!r}"))


def _check_number(value: float, schema: dict[str, Any], path: str, errors: list[ValidationError]) -> None:
    minimum, maximum = schema.get("minimum"), schema.get("maximum")
    exclusive_min, exclusive_max = schema.get("exclusiveMinimum"), schema.get("exclusiveMaximum")

    # OpenAPI 3.0 uses boolean exclusive flags, 3.1 uses numeric bounds.
    if isinstance(exclusive_min, bool):
        exclusive_min = minimum if exclusive_min else None
        minimum = None if exclusive_min is not None else minimum
    if isinstance(exclusive_max, bool):
        exclusive_max = maximum if exclusive_max else None
        maximum = None if exclusive_max is not None else maximum

    if minimum is not None and value < minimum:
        errors.append(ValidationError(path, f"must be >= {minimum}"))
    if maximum is not None and value > maximum:
        errors.append(ValidationError(path, f"must be <= {maximum}"))
    if exclusive_min is not None and value <= exclusive_min:
        errors.append(ValidationError(path, f"must be > {exclusive_min}"))
    if exclusive_max is not None and value >= exclusive_max:
        errors.append(ValidationError(path, f"must be < {exclusive_max}"))
    step = schema.get("multipleOf")
    if step and abs(value / step - round(value / step)) > 1e-9:
        errors.append(ValidationError(path, f"must be a multiple of {step}"))


def _check_combinators(value: Any, schema: dict[str, Any], path: str, errors: list[ValidationError]) -> None:
    for sub in schema.get("allOf") or []:
        _check(value, sub, path, errors)

    any_of = schema.get("anyOf")
    if any_of and not any(is_valid(value, sub) for sub in any_of):
        errors.append(ValidationError(path, "must match at least one allowed schema"))

    one_of = schema.get("oneOf")
    if one_of:
        matches = sum(1 for sub in one_of if is_valid(value, sub))
        if matches != 1:
            errors.append(ValidationError(path, f"must match exactly one allowed schema (matched {matches})"))

    negated = schema.get("not")
    if isinstance(negated, dict) and negated and is_valid(value, negated):
        errors.append(ValidationError(path, "must not match the excluded schema"))


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name
