"""Contract data models and validation outcomes."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ParameterSpec:
    """One declared operation parameter."""

    name: str
    location: str  # path, query, header or cookie
    required: bool = False
    schema: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestBodySpec:
    """Declared request body: media type -> schema."""

    required: bool = False
    content: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class Operation:
    """A (method, path template) entry of the contract."""

    operation_id: str
    method: str
    path_template: str
    parameters: tuple[ParameterSpec, ...] = ()
    request_body: RequestBodySpec | None = None
    responses: dict[str, dict[str, Any]] = field(default_factory=dict)
    summary: str = ""

    def parameters_in(self, location: str) -> list[ParameterSpec]:
        """Return the parameters declared for one location."""
        return [p for p in self.parameters if p.location == location]


@dataclass(frozen=True)
class Contract:
    """Immutable view of a loaded API contract."""

    title: str
    version: str
    operations: tuple[Operation, ...]
    base_paths: tuple[str, ...] = ()
    source: str = ""

    def find(self, method: str, path_template: str) -> Operation | None:
        method = method.upper()
        for operation in self.operations:
            if operation.method == method and operation.path_template == path_template:
                return operation
        return None

    def __len__(self) -> int:
        return len(self.operations)


@dataclass(frozen=True)
class ValidationError:
    """A single violated constraint."""

    path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


@dataclass(frozen=True)
class Matched:
    """The request matched an operation and passed validation."""

    operation: Operation
    parameters: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class NotFound:
    """No operation is declared for the request."""

    method: str
    path: str
    allowed_methods: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationFailed:
    """The request matched an operation but violates its constraints."""

    operation: Operation
    errors: tuple[ValidationError, ...]

    def to_list(self) -> list[dict[str, str]]:
        return [error.to_dict() for error in self.errors]


ValidationOutcome = Matched | NotFound | ValidationFailed
