"""Exception types raised by the gateway."""


class GatewayError(Exception):
    """Base class for gateway failures."""


class ContractLoadError(GatewayError):
    """The API contract could not be read or is malformed."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class MalformedRequest(GatewayError):
    """The caller sent bytes that are not a valid HTTP/1.x request."""


class UpstreamError(GatewayError):
    """A forwarded request failed at the transport level."""

    def __init__(self, url: str, cause: BaseException):
        self.url = url
        self.cause = cause
        super().__init__(f"{url}: {describe_cause(cause)}")


def describe_cause(exc: BaseException) -> str:
    """Return a readable message for an exception with an empty str()."""
    return str(exc) or type(exc).__name__
