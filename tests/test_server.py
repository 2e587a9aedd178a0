"""Tests for the gateway HTTP listener."""

import asyncio
import json
from contextlib import asynccontextmanager

import httpx
import pytest
import respx

from qbogate.config import Mode
from qbogate.errors import ContractLoadError
from qbogate.modules.gateway import GatewayServer, create_gateway


@asynccontextmanager
async def running(gateway: GatewayServer):
    await gateway.start()
    try:
        yield gateway.bound_port
    finally:
        await gateway.stop()


async def _exchange(port: int, raw: bytes) -> tuple[int, dict[str, str], bytes]:
    """Send raw bytes and read until the gateway closes the connection."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(raw)
    await writer.drain()
    data = await asyncio.wait_for(reader.read(), timeout=5)
    writer.close()
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        key, _, value = line.partition(":")
        headers[key.strip().lower()] = value.strip()
    return int(lines[0].split()[1]), headers, body


def _get(target: str, method: str = "GET") -> bytes:
    return f"{method} {target} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode()


# ── lifecycle ────────────────────────────────────────────────────


class TestGatewayLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, make_settings) -> None:
        gateway = create_gateway(make_settings())
        async with running(gateway) as port:
            assert gateway.running is True
            assert port > 0
        assert gateway.running is False

    def test_components_per_mode(self, make_settings) -> None:
        mock = create_gateway(make_settings(Mode.MOCK)).dispatcher
        assert mock.forwarder is None and mock.recorder is None

        proxy = create_gateway(make_settings(Mode.PROXY)).dispatcher
        assert proxy.forwarder is not None and proxy.recorder is None

        capture = create_gateway(make_settings(Mode.CAPTURE)).dispatcher
        assert capture.forwarder is not None and capture.recorder is not None

    @pytest.mark.parametrize("mode", list(Mode))
    def test_broken_contract_is_fatal(self, make_settings, temp_dir, mode: Mode) -> None:
        with pytest.raises(ContractLoadError):
            create_gateway(make_settings(mode, spec_path=temp_dir / "missing.json"))


# ── routing ──────────────────────────────────────────────────────


class TestGatewayRouting:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "POST", "DELETE"])
    async def test_health_any_method(self, make_settings, method: str) -> None:
        async with running(create_gateway(make_settings(Mode.PROXY))) as port:
            status, headers, body = await _exchange(port, _get("/health", method))
        assert status == 200
        assert headers["connection"] == "close"
        assert json.loads(body) == {"ok": True, "mode": "proxy"}

    @pytest.mark.asyncio
    async def test_outside_prefix(self, make_settings) -> None:
        async with running(create_gateway(make_settings())) as port:
            status, _, body = await _exchange(port, _get("/v3/company/42/customer"))
        assert status == 404
        assert json.loads(body) == {"error": "Not found", "path": "/v3/company/42/customer"}

    @pytest.mark.asyncio
    async def test_mock_through_socket(self, make_settings) -> None:
        async with running(create_gateway(make_settings())) as port:
            status, headers, body = await _exchange(port, _get("/api/v3/company/42/customer"))
        assert status == 200
        assert int(headers["content-length"]) == len(body)
        assert json.loads(body) == {"Customer": []}

    @pytest.mark.asyncio
    async def test_post_body_through_socket(self, make_settings) -> None:
        payload = b'{"DisplayName": "Acme"}'
        raw = (
            b"POST /api/v3/company/42/customer HTTP/1.1\r\n"
            b"Host: localhost\r\nContent-Type: application/json\r\n"
            b"Content-Length: %d\r\n\r\n%s" % (len(payload), payload)
        )
        async with running(create_gateway(make_settings())) as port:
            status, _, body = await _exchange(port, raw)
        assert status == 201
        assert json.loads(body)["Active"] is True

    @pytest.mark.asyncio
    async def test_head_has_no_body(self, make_settings) -> None:
        async with running(create_gateway(make_settings())) as port:
            status, _, body = await _exchange(port, _get("/health", "HEAD"))
        assert status == 200
        assert body == b""

    @pytest.mark.asyncio
    async def test_malformed_request(self, make_settings) -> None:
        async with running(create_gateway(make_settings())) as port:
            status, _, body = await _exchange(port, b"NONSENSE\r\n\r\n")
        assert status == 400
        assert json.loads(body)["error"] == "Bad request"

    @pytest.mark.asyncio
    async def test_oversized_request_line(self, make_settings) -> None:
        target = "/api/v3/company/42/query?query=" + "x" * 70_000
        async with running(create_gateway(make_settings())) as port:
            status, _, body = await _exchange(port, _get(target))
        assert status == 400
        assert json.loads(body) == {"error": "Bad request", "details": "request line too long"}

    @pytest.mark.asyncio
    async def test_capture_through_socket(self, make_settings) -> None:
        settings = make_settings(Mode.CAPTURE)
        with respx.mock(assert_all_called=False) as mock:
            mock.get("https://qbo.test/v3/company/42/customer").mock(
                return_value=httpx.Response(200, json={"Customer": [{"Id": "1"}]}),
            )
            async with running(create_gateway(settings)) as port:
                status, _, body = await _exchange(port, _get("/api/v3/company/42/customer?minorversion=65"))

        assert status == 200
        records = [json.loads(line) for line in settings.capture_path.read_text().splitlines()]
        assert len(records) == 1
        assert records[0]["res"]["body"] == body.decode()
