"""Mode dispatch: satisfy a request locally or forward it."""

import logging
import time

from qbogate.config import GatewaySettings, Mode
from qbogate.errors import describe_cause
from qbogate.modules.contract import (
    ContractValidator,
    Matched,
    NotFound,
    Operation,
    SynthesizedResponse,
    ValidationFailed,
    synthesize,
)
from qbogate.modules.proxy import (
    ClientResponse,
    Exchange,
    ExchangeRecorder,
    ForwardResult,
    InboundRequest,
    ProxyOptions,
    UpstreamForwarder,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Path not found in specification"
VALIDATION_MESSAGE = "Request validation failed"


class ModeDispatcher:
    """Route each request to exactly one of the synthesizer or the forwarder."""

    def __init__(
        self,
        settings: GatewaySettings,
        validator: ContractValidator | None = None,
        forwarder: UpstreamForwarder | None = None,
        recorder: ExchangeRecorder | None = None,
    ):
        self.mode = settings.mode
        self.options = ProxyOptions.from_settings(settings)
        if self.mode is Mode.MOCK and validator is None:
            raise ValueError("mock mode requires a contract validator")
        if self.mode.forwards and forwarder is None:
            raise ValueError(f"{self.mode.value} mode requires an upstream forwarder")
        if self.mode is Mode.CAPTURE and recorder is None:
            raise ValueError("capture mode requires an exchange recorder")
        self.validator = validator
        self.forwarder = forwarder
        self.recorder = recorder
        self._mocks: dict[Operation, SynthesizedResponse] = {}

    async def dispatch(self, request: InboundRequest, responder: ClientResponse) -> None:
        """Handle one request. Unexpected failures become a 500 JSON body."""
        start = time.monotonic()
        try:
            if self.mode is Mode.MOCK:
                await self._mock(request, responder)
            else:
                await self._forward(request, responder)
        except Exception as exc:
            logger.exception("Unhandled error for %s %s", request.method, request.target)
            if responder.started:
                responder.abort()
            else:
                await responder.send_json(500, {"error": "Internal gateway error", "details": describe_cause(exc)})
        finally:
            logger.info(
                '%s "%s %s" %s %.1fms',
                request.client or "-",
                request.method,
                request.target,
                responder.status or "-",
                (time.monotonic() - start) * 1000,
            )

    async def _mock(self, request: InboundRequest, responder: ClientResponse) -> None:
        path = self.options.rewrite_path(request.path)
        outcome = self.validator.match(request.method, path, request.query, request.headers, request.body)

        if isinstance(outcome, NotFound):
            payload = {"error": NOT_FOUND_MESSAGE, "path": path}
            if outcome.allowed_methods:
                payload["allowed"] = list(outcome.allowed_methods)
            await responder.send_json(404, payload)
        elif isinstance(outcome, ValidationFailed):
            logger.debug("Validation failed for %s: %s", outcome.operation.operation_id, outcome.to_list())
            await responder.send_json(400, {"error": VALIDATION_MESSAGE, "errors": outcome.to_list()})
        elif isinstance(outcome, Matched):
            response = self.mock_response(outcome.operation)
            await responder.send(response.status, response.render(), content_type=response.content_type)

    def mock_response(self, operation: Operation) -> SynthesizedResponse:
        """Synthesize once per operation; later requests reuse the same body."""
        if operation not in self._mocks:
            self._mocks[operation] = synthesize(operation)
        return self._mocks[operation]

    async def _forward(self, request: InboundRequest, responder: ClientResponse) -> ForwardResult:
        hook = self._capture_hook(request) if self.mode is Mode.CAPTURE else None
        return await self.forwarder.forward(request, self.options, responder, on_buffered=hook)

    def _capture_hook(self, request: InboundRequest):
        async def record(result: ForwardResult) -> None:
            exchange = Exchange.from_request(request, result.status, result.body or b"")
            if not await self.recorder.record(exchange):
                logger.warning("Exchange for %s %s was not captured", request.method, request.target)

        return record
