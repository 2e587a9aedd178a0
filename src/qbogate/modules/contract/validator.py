"""Match inbound requests to contract operations and validate them."""

import json
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import unquote

from .models import (
    Contract,
    Matched,
    NotFound,
    Operation,
    ParameterSpec,
    ValidationError,
    ValidationFailed,
    ValidationOutcome,
)
from .schema import validate_value

_PARAM_RE = re.compile(r"\{([^{}/]+)\}")
_TRUE = {"true", "1"}
_FALSE = {"false", "0"}


class PathTemplate:
    """Compiled matcher for one path template such as ``/v3/company/{id}``."""

    def __init__(self, template: str):
        self.template = template
        self._segments: list[str | tuple[re.Pattern[str], list[str]]] = []
        for segment in _split(template):
            names = _PARAM_RE.findall(segment)
            if not names:
                self._segments.append(segment)
                continue
            pattern = ""
            last = 0
            for index, found in enumerate(_PARAM_RE.finditer(segment)):
                pattern += re.escape(segment[last : found.start()]) + f"(?P<p{index}>[^/]+?)"
                last = found.end()
            pattern += re.escape(segment[last:])
            self._segments.append((re.compile(f"^{pattern}$"), names))

    @property
    def sort_key(self) -> tuple[int, ...]:
        # Literal segments win over templated ones at the same position.
        return tuple(0 if isinstance(seg, str) else 1 for seg in self._segments)

    def match(self, segments: list[str]) -> dict[str, str] | None:
        if len(segments) != len(self._segments):
            return None
        bound: dict[str, str] = {}
        for actual, expected in zip(segments, self._segments):
            if isinstance(expected, str):
                if actual != expected:
                    return None
                continue
            regex, names = expected
            found = regex.match(actual)
            if found is None:
                return None
            for index, name in enumerate(names):
                bound[name] = unquote(found.group(f"p{index}"))
        return bound


class ContractValidator:
    """Validate requests against an immutable contract.

    ``match`` has no side effects and may be called concurrently.
    """

    def __init__(self, contract: Contract):
        self.contract = contract
        by_template: dict[str, dict[str, Operation]] = {}
        for operation in contract.operations:
            by_template.setdefault(operation.path_template, {})[operation.method] = operation
        templates = [PathTemplate(t) for t in by_template]
        templates.sort(key=lambda t: t.sort_key)
        self._routes = [(t, by_template[t.template]) for t in templates]

    def resolve(self, method: str, path: str) -> tuple[Operation | None, dict[str, str], tuple[str, ...]]:
        """Find the operation for a method and path.

        Returns the operation (or None), the bound path variables and the
        methods declared for the first matching template.
        """
        method = method.upper()
        allowed: tuple[str, ...] = ()
        for candidate in self._candidate_paths(path):
            segments = _split(candidate)
            for template, operations in self._routes:
                bound = template.match(segments)
                if bound is None:
                    continue
                if method in operations:
                    return operations[method], bound, tuple(sorted(operations))
                if not allowed:
                    allowed = tuple(sorted(operations))
        return None, {}, allowed

    def match(
        self,
        method: str,
        path: str,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes | str | None = None,
    ) -> ValidationOutcome:
        operation, path_params, allowed = self.resolve(method, path)
        if operation is None:
            return NotFound(method=method.upper(), path=path, allowed_methods=allowed)

        lowered = {k.lower(): v for k, v in (headers or {}).items()}
        errors: list[ValidationError] = []
        parameters: dict[str, dict[str, Any]] = {"path": {}, "query": {}, "header": {}}

        sources = {
            "path": {k: [v] for k, v in path_params.items()},
            "query": _multi(query or {}),
            "header": {k: [v] for k, v in lowered.items()},
        }
        for spec in operation.parameters:
            if spec.location not in sources:
                continue
            key = spec.name.lower() if spec.location == "header" else spec.name
            raw = sources[spec.location].get(key)
            label = f"{spec.location}.{spec.name}"
            if not raw:
                if spec.required:
                    errors.append(ValidationError(label, "is required"))
                continue
            value, problem = _coerce(raw, spec)
            if problem:
                errors.append(ValidationError(label, problem))
                continue
            errors.extend(validate_value(value, spec.schema, label))
            parameters[spec.location][spec.name] = value

        errors.extend(_validate_body(operation, lowered.get("content-type", ""), body))
        if errors:
            return ValidationFailed(operation=operation, errors=tuple(errors))
        return Matched(operation=operation, parameters=parameters)

    def _candidate_paths(self, path: str) -> list[str]:
        candidates = [path]
        for base in self.contract.base_paths:
            if path == base or path.startswith(base + "/"):
                candidates.append(path[len(base) :] or "/")
        return candidates


def _split(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def _multi(query: Mapping[str, Any]) -> dict[str, list[str]]:
    result = {}
    for key, value in query.items():
        result[key] = [str(v) for v in value] if isinstance(value, (list, tuple)) else [str(value)]
    return result


def _coerce(raw: list[str], spec: ParameterSpec) -> tuple[Any, str | None]:
    """Convert raw string values to the parameter schema's type."""
    schema = spec.schema
    if schema.get("type") == "array":
        values = raw if len(raw) > 1 else raw[0].split(",")
        item_type = (schema.get("items") or {}).get("type")
        coerced = []
        for item in values:
            value, problem = _coerce_scalar(item, item_type)
            if problem:
                return None, problem
            coerced.append(value)
        return coerced, None
    return _coerce_scalar(raw[-1], schema.get("type"))


def _coerce_scalar(raw: str, kind: Any) -> tuple[Any, str | None]:
    if kind == "integer":
        try:
            return int(raw), None
        except ValueError:
            return None, "must be integer"
    if kind == "number":
        try:
            return float(raw), None
        except ValueError:
            return None, "must be number"
    if kind == "boolean":
        lowered = raw.lower()
        if lowered in _TRUE:
            return True, None
        if lowered in _FALSE:
            return False, None
        return None, "must be boolean"
    return raw, None


def media_type(content_type: str) -> str:
    """Return the bare, lowercased media type of a Content-Type value."""
    return content_type.split(";", 1)[0].strip().lower()


def is_json_media(media: str) -> bool:
    return media == "application/json" or media.endswith("+json")


def _select_schema(media: str, content: dict[str, dict[str, Any]]) -> dict[str, Any] | None:
    if media in content:
        return content[media]
    major = media.split("/", 1)[0]
    for declared, schema in content.items():
        if declared in ("*/*", f"{major}/*"):
            return schema
    return None


def _validate_body(operation: Operation, content_type: str, body: bytes | str | None) -> list[ValidationError]:
    spec = operation.request_body
    if spec is None:
        return []
    if not body:
        return [ValidationError("body", "is required")] if spec.required else []
    if not spec.content:
        return []

    media = media_type(content_type)
    if not media:
        return [ValidationError("header.content-type", "is required for a request body")]
    schema = _select_schema(media, spec.content)
    if schema is None:
        expected = ", ".join(sorted(spec.content))
        return [ValidationError("header.content-type", f"{media!r} is not supported; expected {expected}")]
    if not is_json_media(media):
        return []

    try:
        document = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        return [ValidationError("body", f"is not valid JSON: {e}")]
    return validate_value(document, schema, "body")
