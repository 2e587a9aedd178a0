"""Load an OpenAPI document into an immutable Contract."""

import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlsplit

import yaml

from qbogate.errors import ContractLoadError

from .models import Contract, Operation, ParameterSpec, RequestBodySpec

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
PARAMETER_LOCATIONS = {"path", "query", "header", "cookie"}
YAML_SUFFIXES = {".yaml", ".yml"}


class RefResolver:
    """Resolve local ``$ref`` pointers inside one document.

    References are expanded eagerly. A reference that points back into one of
    its own ancestors resolves to an empty schema, which accepts anything.
    """

    def __init__(self, document: dict[str, Any], source: str):
        self.document = document
        self.source = source
        self._cache: dict[str, Any] = {}
        self._active: set[str] = set()

    def resolve(self, node: Any) -> Any:
        if isinstance(node, list):
            return [self.resolve(item) for item in node]
        if not isinstance(node, dict):
            return node
        ref = node.get("$ref")
        if isinstance(ref, str):
            return self._resolve_ref(ref)
        return {key: self.resolve(value) for key, value in node.items()}

    def _resolve_ref(self, ref: str) -> Any:
        if ref in self._cache:
            return self._cache[ref]
        if ref in self._active:
            logger.debug("Recursive reference %s truncated", ref)
            return {}
        self._active.add(ref)
        try:
            resolved = self.resolve(self._lookup(ref))
        finally:
            self._active.discard(ref)
        self._cache[ref] = resolved
        return resolved

    def _lookup(self, ref: str) -> Any:
        if not ref.startswith("#"):
            raise ContractLoadError(self.source, f"external reference {ref!r} is not supported")
        node: Any = self.document
        for token in ref[1:].split("/")[1:]:
            key = unquote(token).replace("~1", "/").replace("~0", "~")
            if isinstance(node, list) and key.isdigit() and int(key) < len(node):
                node = node[int(key)]
            elif isinstance(node, dict) and key in node:
                node = node[key]
            else:
                raise ContractLoadError(self.source, f"unresolvable reference {ref!r}")
        return node


def read_document(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML document from disk."""
    source = str(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ContractLoadError(source, "file not found") from None
    except (OSError, UnicodeDecodeError) as e:
        raise ContractLoadError(source, f"cannot read file: {e}") from e

    try:
        if path.suffix.lower() in YAML_SUFFIXES:
            document = yaml.safe_load(text)
        else:
            document = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ContractLoadError(source, f"cannot parse document: {e}") from e

    if not isinstance(document, dict):
        raise ContractLoadError(source, "document root must be an object")
    return document


def load_contract(path: Path | str) -> Contract:
    """Load and compile the contract at ``path``."""
    path = Path(path)
    contract = build_contract(read_document(path), source=str(path))
    logger.info(
        "Loaded contract %r v%s with %d operations from %s",
        contract.title,
        contract.version,
        len(contract),
        path,
    )
    return contract


def build_contract(document: dict[str, Any], source: str = "<memory>") -> Contract:
    """Build a Contract from an already decoded OpenAPI 3 document."""
    if "openapi" not in document:
        if "swagger" in document:
            raise ContractLoadError(source, "Swagger 2.0 documents are not supported")
        raise ContractLoadError(source, "missing 'openapi' version field")

    paths = document.get("paths")
    if not isinstance(paths, dict):
        raise ContractLoadError(source, "'paths' must be an object")

    resolver = RefResolver(document, source)
    operations: list[Operation] = []
    for template, raw_item in paths.items():
        if not isinstance(template, str) or not template.startswith("/"):
            raise ContractLoadError(source, f"path {template!r} must start with '/'")
        item = resolver.resolve(raw_item)
        if not isinstance(item, dict):
            raise ContractLoadError(source, f"path item {template!r} must be an object")
        shared = _parse_parameters(item.get("parameters", []), source, template)
        for method in HTTP_METHODS:
            if method in item:
                operations.append(_build_operation(item[method], method, template, shared, source))

    info = document.get("info") if isinstance(document.get("info"), dict) else {}
    return Contract(
        title=str(info.get("title", "")),
        version=str(info.get("version", "")),
        operations=tuple(operations),
        base_paths=_base_paths(document.get("servers")),
        source=source,
    )


def _build_operation(
    raw: Any,
    method: str,
    template: str,
    shared: list[ParameterSpec],
    source: str,
) -> Operation:
    where = f"{method.upper()} {template}"
    if not isinstance(raw, dict):
        raise ContractLoadError(source, f"operation {where} must be an object")

    # Operation-level parameters override path-level ones with the same name and location.
    own = _parse_parameters(raw.get("parameters", []), source, where)
    merged = {(p.name, p.location): p for p in shared}
    merged.update({(p.name, p.location): p for p in own})

    responses = raw.get("responses", {})
    if not isinstance(responses, dict):
        raise ContractLoadError(source, f"responses of {where} must be an object")

    return Operation(
        operation_id=str(raw.get("operationId") or f"{method}_{template}"),
        method=method.upper(),
        path_template=template,
        parameters=tuple(merged.values()),
        request_body=_parse_request_body(raw.get("requestBody"), source, where),
        responses={str(status): value for status, value in responses.items() if isinstance(value, dict)},
        summary=str(raw.get("summary", "")),
    )


def _parse_parameters(raw: Any, source: str, where: str) -> list[ParameterSpec]:
    if not isinstance(raw, list):
        raise ContractLoadError(source, f"parameters of {where} must be a list")
    params = []
    for entry in raw:
        if not isinstance(entry, dict) or "name" not in entry or "in" not in entry:
            raise ContractLoadError(source, f"parameter of {where} needs 'name' and 'in'")
        location = entry["in"]
        if location not in PARAMETER_LOCATIONS:
            raise ContractLoadError(source, f"parameter {entry['name']!r} of {where} has invalid 'in'")
        schema = entry.get("schema")
        if schema is None and isinstance(entry.get("content"), dict) and entry["content"]:
            media = next(iter(entry["content"].values()))
            if not isinstance(media, dict):
                raise ContractLoadError(source, f"content of parameter {entry['name']!r} of {where} must be an object")
            schema = media.get("schema")
        params.append(
            ParameterSpec(
                name=str(entry["name"]),
                location=location,
                required=bool(entry.get("required", False)) or location == "path",
                schema=schema if isinstance(schema, dict) else {},
            )
        )
    return params


def _parse_request_body(raw: Any, source: str, where: str) -> RequestBodySpec | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ContractLoadError(source, f"requestBody of {where} must be an object")
    content = raw.get("content", {})
    if not isinstance(content, dict):
        raise ContractLoadError(source, f"requestBody content of {where} must be an object")
    return RequestBodySpec(
        required=bool(raw.get("required", False)),
        content={
            media.lower(): (media_obj.get("schema") or {}) if isinstance(media_obj, dict) else {}
            for media, media_obj in content.items()
        },
    )


def _base_paths(servers: Any) -> tuple[str, ...]:
    paths = []
    for server in servers if isinstance(servers, list) else []:
        url = server.get("url") if isinstance(server, dict) else None
        if not isinstance(url, str) or "{" in url:
            continue
        base = urlsplit(url).path.rstrip("/")
        if base and base not in paths:
            paths.append(base)
    return tuple(paths)
