"""restgate: rate-limited dispatch for a quota-enforcing JSON HTTP API."""

from restgate.client import RestClient
from restgate.dispatch import (
    Completion,
    CompletionState,
    Dispatcher,
    Request,
    RetryPolicy,
)
from restgate.exceptions import (
    BadRequestError,
    ContentTooLongError,
    DispatcherClosedError,
    ForbiddenError,
    HTTPException,
    NotFoundError,
    RateLimitedError,
    RestGateError,
    ServerError,
    TransportError,
    UnauthorizedError,
)
from restgate.ratelimit import Bucket, BucketRegistry, RateLimitInfo, parse_rate_limit
from restgate.routes import Route
from restgate.transport import HttpxTransport, MockTransport, RawResponse, Transport

__version__ = "0.1.0"

__all__ = [
    # Client
    "RestClient",
    "Route",
    # Dispatch
    "Completion",
    "CompletionState",
    "Dispatcher",
    "Request",
    "RetryPolicy",
    # Rate limits
    "Bucket",
    "BucketRegistry",
    "RateLimitInfo",
    "parse_rate_limit",
    # Transport
    "HttpxTransport",
    "MockTransport",
    "RawResponse",
    "Transport",
    # Errors
    "BadRequestError",
    "ContentTooLongError",
    "DispatcherClosedError",
    "ForbiddenError",
    "HTTPException",
    "NotFoundError",
    "RateLimitedError",
    "RestGateError",
    "ServerError",
    "TransportError",
    "UnauthorizedError",
]
