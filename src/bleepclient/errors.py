"""Client-side error definitions for bleepclient."""

from httpx import TransportError

__all__ = [
    "BleepClientError",
    "ConfigurationError",
    "MalformedResponse",
    "ProtocolError",
    "TransportError",
]


class BleepClientError(Exception):
    """Base class for every error raised by bleepclient itself.

    Transport failures are not wrapped: they surface as the
    ``httpx.TransportError`` subclass raised by the transport, re-exported
    here as ``TransportError``.
    """


class ConfigurationError(BleepClientError):
    """A required client option is missing or empty.

    Attributes:
        field: The name of the offending option (e.g. "bucket").
    """

    def __init__(self, field: str) -> None:
        super().__init__(f'"{field}" is required')
        self.field = field


class ProtocolError(BleepClientError):
    """The remote store answered with an unexpected HTTP status.

    Attributes:
        operation: The client operation that failed (e.g. "put_part").
        status: The observed HTTP status code.
        code: The S3 error code from the response body, if one was sent.
        message: The S3 error message from the response body, if any.
        resource: The resource the request targeted.
    """

    def __init__(
        self,
        operation: str,
        status: int,
        code: str = "",
        message: str = "",
        resource: str = "",
    ) -> None:
        """Initialize the protocol error.

        Args:
            operation: Name of the failing operation.
            status: HTTP status code of the response.
            code: Optional S3 error code.
            message: Optional S3 error message.
            resource: Optional resource name.
        """
        text = f"{operation}: HTTP {status}"
        if code:
            text += f" {code}"
        if message:
            text += f" ({message})"
        super().__init__(text)
        self.operation = operation
        self.status = status
        self.code = code
        self.message = message
        self.resource = resource


class MalformedResponse(ProtocolError):
    """A successful response body could not be parsed."""

    def __init__(self, operation: str, status: int, message: str = "", resource: str = "") -> None:
        super().__init__(
            operation,
            status,
            code="MalformedResponse",
            message=message or "The response body was not valid XML.",
            resource=resource,
        )
