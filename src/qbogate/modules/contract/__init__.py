"""Contract module -- OpenAPI loading, request validation and mock synthesis."""

from .loader import build_contract, load_contract
from .models import (
    Contract,
    Matched,
    NotFound,
    Operation,
    ParameterSpec,
    RequestBodySpec,
    ValidationError,
    ValidationFailed,
    ValidationOutcome,
)
from .synthesizer import SynthesizedResponse, synthesize
from .validator import ContractValidator

__all__ = [
    "Contract",
    "ContractValidator",
    "Matched",
    "NotFound",
    "Operation",
    "ParameterSpec",
    "RequestBodySpec",
    "SynthesizedResponse",
    "ValidationError",
    "ValidationFailed",
    "ValidationOutcome",
    "build_contract",
    "load_contract",
    "synthesize",
]
