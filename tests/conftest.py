"""Test configuration and fixtures for qbogate."""

import copy
import json
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from qbogate.config import GatewaySettings, Mode
from qbogate.modules.contract import Contract, ContractValidator, build_contract

SAMPLE_DOCUMENT: dict[str, Any] = {
    "openapi": "3.0.1",
    "info": {"title": "QuickBooks Online Accounting", "version": "3"},
    "servers": [{"url": "https://quickbooks.api.intuit.com"}],
    "paths": {
        "/v3/company/{id}/customer": {
            "parameters": [{"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}],
            "get": {
                "operationId": "listCustomers",
                "parameters": [
                    {"name": "minorversion", "in": "query", "schema": {"type": "integer", "minimum": 1}}
                ],
                "responses": {
                    "400": {"description": "bad", "content": {"application/json": {"example": {"Fault": {}}}}},
                    "200": {
                        "description": "ok",
                        "content": {"application/json": {"example": {"Customer": []}}},
                    },
                },
            },
            "post": {
                "operationId": "createCustomer",
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Customer"}}},
                },
                "responses": {
                    "201": {
                        "description": "created",
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Customer"}}},
                    }
                },
            },
        },
        "/v3/company/{id}/query": {
            "get": {
                "operationId": "query",
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}},
                    {"name": "query", "in": "query", "required": True, "schema": {"type": "string"}},
                ],
                "responses": {
                    "200": {
                        "description": "ok",
                        "content": {
                            "application/json": {
                                "examples": {
                                    "first": {"value": {"QueryResponse": {"startPosition": 1}}},
                                    "second": {"value": {"QueryResponse": {}}},
                                }
                            }
                        },
                    }
                },
            }
        },
        "/v3/company/{id}/reports/ProfitAndLoss": {
            "get": {
                "operationId": "profitAndLoss",
                "responses": {"default": {"description": "undocumented", "content": {"application/json": {}}}},
            }
        },
        "/v3/company/{id}/preferences": {
            "delete": {"operationId": "deletePreferences", "responses": {"204": {"description": "gone"}}}
        },
    },
    "components": {
        "schemas": {
            "Customer": {
                "type": "object",
                "required": ["DisplayName"],
                "properties": {
                    "Id": {"type": "string", "readOnly": True},
                    "DisplayName": {"type": "string", "minLength": 1},
                    "Active": {"type": "boolean", "default": True},
                    "Balance": {"type": "number"},
                    "ParentRef": {"$ref": "#/components/schemas/Customer"},
                },
            }
        }
    },
}


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_document() -> dict[str, Any]:
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def contract_path(temp_dir: Path, sample_document: dict[str, Any]) -> Path:
    """Write the sample contract to disk as JSON."""
    path = temp_dir / "QuickBooksOnlineV3.json"
    path.write_text(json.dumps(sample_document))
    return path


@pytest.fixture
def contract(sample_document: dict[str, Any]) -> Contract:
    return build_contract(sample_document, source="sample")


@pytest.fixture
def validator(contract: Contract) -> ContractValidator:
    return ContractValidator(contract)


@pytest.fixture
def make_settings(temp_dir: Path, contract_path: Path):
    """Build GatewaySettings for a mode with test-friendly defaults."""

    def _make(mode: Mode = Mode.MOCK, **overrides: Any) -> GatewaySettings:
        values: dict[str, Any] = {
            "mode": mode,
            "port": 0,
            "spec_path": contract_path,
            "upstream_base": "https://qbo.test",
            "capture_path": temp_dir / "captures.ndjson",
        }
        values.update(overrides)
        return GatewaySettings(**values)

    return _make


class FakeWriter:
    """In-memory stand-in for asyncio.StreamWriter."""

    def __init__(self, fail_after: int | None = None):
        self.buffer = bytearray()
        self.closing = False
        self.writes = 0
        self.fail_after = fail_after

    def write(self, data: bytes) -> None:
        if self.fail_after is not None and self.writes >= self.fail_after:
            raise ConnectionResetError("caller went away")
        self.writes += 1
        self.buffer.extend(data)

    async def drain(self) -> None:
        return None

    def is_closing(self) -> bool:
        return self.closing

    def close(self) -> None:
        self.closing = True

    def parsed(self) -> tuple[int, dict[str, str], bytes]:
        """Split the written bytes into status, lowercased headers and de-chunked body."""
        head, _, rest = bytes(self.buffer).partition(b"\r\n\r\n")
        lines = head.decode("latin-1").split("\r\n")
        status = int(lines[0].split()[1])
        headers = {}
        for line in lines[1:]:
            key, _, value = line.partition(":")
            headers[key.strip().lower()] = value.strip()
        if headers.get("transfer-encoding") == "chunked":
            body = bytearray()
            while rest:
                size_line, _, rest = rest.partition(b"\r\n")
                size = int(size_line, 16)
                if size == 0:
                    break
                body.extend(rest[:size])
                rest = rest[size + 2 :]
            return status, headers, bytes(body)
        return status, headers, rest


@pytest.fixture
def fake_writer() -> FakeWriter:
    return FakeWriter()
