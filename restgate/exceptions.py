"""Custom exceptions for the client.

Every outcome of a dispatched request that is not a success surfaces as one
of these, through the request's completion.
"""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from restgate.transport.base import RawResponse


class RestGateError(Exception):
    """Base class for client exceptions with an HTTP status code.

    All custom exceptions inherit from this class and define their specific
    status_code (0 when no HTTP response was involved).
    """
    status_code: int = 0

    def __init__(self, message: str = "Request failed"):
        self.message = message
        super().__init__(message)


class TransportError(RestGateError):
    """Raised when the request never produced an HTTP response.

    Transports raise it for connection failures and timeouts; the dispatcher
    rejects with it once the retry bound is exhausted.
    """

    def __init__(self, message: str = "Transport failure", attempts: int = 0):
        self.attempts = attempts
        super().__init__(message)


class DispatcherClosedError(RestGateError):
    """Raised for requests submitted to, or still pending in, a closed dispatcher."""

    def __init__(self, message: str = "Dispatcher is closed"):
        super().__init__(message)


class HTTPException(RestGateError):
    """Raised when the remote service answered with an unsuccessful status.

    Attributes:
        status: HTTP status code of the final response
        body: Raw response body
        payload: Decoded JSON error payload, if any
        code: Error code from the payload, if any
        retries: Retries spent before giving up
    """
    status_code = 0

    def __init__(
        self,
        status: int,
        body: bytes = b"",
        payload: Any = None,
        retries: int = 0,
        response: Optional["RawResponse"] = None,
        message: Optional[str] = None,
    ):
        self.status = status
        self.body = body
        self.payload = payload
        self.retries = retries
        self.response = response
        self.code = payload.get("code") if isinstance(payload, dict) else None
        detail = payload.get("message") if isinstance(payload, dict) else None
        if message is None:
            text = detail or body.decode("utf-8", errors="replace")
            message = f"Error code {status}: {text}" if text else f"Error code {status}"
        super().__init__(message)


class BadRequestError(HTTPException):
    """Raised on 400 Bad Request."""
    status_code = 400


class UnauthorizedError(HTTPException):
    """Raised on 401 Unauthorized (invalid or missing token)."""
    status_code = 401


class ForbiddenError(HTTPException):
    """Raised on 403 Forbidden (missing permissions)."""
    status_code = 403


class NotFoundError(HTTPException):
    """Raised on 404 Not Found."""
    status_code = 404


class RateLimitedError(HTTPException):
    """Raised when a request stayed throttled past the re-queue cap.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(
        self,
        status: int = 429,
        body: bytes = b"",
        payload: Any = None,
        retries: int = 0,
        response: Optional["RawResponse"] = None,
        retry_after: Optional[float] = None,
        is_global: bool = False,
    ):
        self.retry_after = retry_after
        self.is_global = is_global
        super().__init__(status, body, payload, retries, response)


class ServerError(HTTPException):
    """Raised when a 5xx persisted past the retry bound."""
    status_code = 500


class ContentTooLongError(ServerError):
    """Raised when the service rejects content over its length limit with a 500."""

    TOO_LONG_MARKERS = ("longer than 2000 characters", "string value is too long")


_STATUS_ERRORS = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    429: RateLimitedError,
}


def error_from_response(response: "RawResponse", retries: int = 0) -> HTTPException:
    """Build the typed exception for an unsuccessful response.

    Args:
        response: The final response received
        retries: Retries spent on the request

    Returns:
        An HTTPException subclass instance matching the status code
    """
    status = response.status
    payload = response.json()
    if status >= 500:
        lowered = response.text.lower()
        if any(marker in lowered for marker in ContentTooLongError.TOO_LONG_MARKERS):
            return ContentTooLongError(
                status,
                response.body,
                payload,
                retries,
                response,
                message="The content was longer than the service accepts.",
            )
        return ServerError(status, response.body, payload, retries, response)

    error_cls = _STATUS_ERRORS.get(status, HTTPException)
    return error_cls(status, response.body, payload, retries, response)
