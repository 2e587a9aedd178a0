"""Asyncio HTTP listener in front of the mode dispatcher."""

import asyncio
import logging

from qbogate.config import GatewaySettings, Mode
from qbogate.errors import MalformedRequest
from qbogate.modules.contract import ContractValidator, load_contract
from qbogate.modules.proxy import (
    ClientResponse,
    ExchangeRecorder,
    InboundRequest,
    UpstreamForwarder,
    read_request,
)

from .dispatcher import ModeDispatcher

logger = logging.getLogger(__name__)


class GatewayServer:
    """Local HTTP server that serves /health and dispatches the routing prefix."""

    def __init__(
        self,
        settings: GatewaySettings,
        dispatcher: ModeDispatcher,
        timeout: float = 30.0,
    ):
        self.settings = settings
        self.dispatcher = dispatcher
        self.host = settings.host
        self.port = settings.port
        self.timeout = timeout
        self._server: asyncio.Server | None = None
        self.running = False

    @property
    def bound_port(self) -> int:
        """Actual listening port (useful when started on port 0)."""
        if self._server and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self.port

    async def start(self) -> None:
        """Start listening for connections."""
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        self.running = True
        logger.info(
            "Gateway listening on http://%s:%d (mode=%s)",
            self.host,
            self.bound_port,
            self.settings.mode.value,
        )

    async def stop(self) -> None:
        """Shut down the server and release the upstream client."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
        if self.dispatcher.forwarder is not None:
            await self.dispatcher.forwarder.aclose()
        self.running = False
        logger.info("Gateway stopped")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    def health(self) -> dict[str, object]:
        return {"ok": True, "mode": self.settings.mode.value}

    def is_routed(self, path: str) -> bool:
        prefix = self.settings.routing_prefix.rstrip("/")
        return path == prefix or path.startswith(prefix + "/")

    async def route(self, request: InboundRequest, responder: ClientResponse) -> None:
        path = request.path
        if path == self.settings.health_path:
            await responder.send_json(200, self.health())
        elif self.is_routed(path):
            await self.dispatcher.dispatch(request, responder)
        else:
            await responder.send_json(404, {"error": "Not found", "path": path})

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        peer = writer.get_extra_info("peername")
        client = f"{peer[0]}:{peer[1]}" if isinstance(peer, tuple) else ""
        responder = ClientResponse(writer)
        try:
            request = await read_request(reader, self.timeout, client)
            if request is None:
                return
            responder.head_only = request.method == "HEAD"
            await self.route(request, responder)
        except MalformedRequest as e:
            logger.debug("Bad request from %s: %s", client, e)
            await responder.send_json(400, {"error": "Bad request", "details": str(e)})
        except (TimeoutError, asyncio.IncompleteReadError, ConnectionError, OSError) as e:
            logger.debug("Connection from %s dropped: %s", client, e)
        finally:
            writer.close()


def create_gateway(settings: GatewaySettings) -> GatewayServer:
    """Load the contract and wire the components for the configured mode.

    Raises ContractLoadError when the contract cannot be loaded, in every
    mode, so that a broken contract stops startup.
    """
    validator = ContractValidator(load_contract(settings.spec_path))
    forwarder = UpstreamForwarder() if settings.mode.forwards else None
    recorder = ExchangeRecorder(settings.capture_path) if settings.mode is Mode.CAPTURE else None
    dispatcher = ModeDispatcher(settings, validator=validator, forwarder=forwarder, recorder=recorder)
    return GatewayServer(settings, dispatcher, timeout=settings.upstream_timeout)
