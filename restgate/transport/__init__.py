"""Transport package.

This package provides:
- The transport capability interface (Transport) and RawResponse
- An httpx implementation (HttpxTransport, create_http_client)
- An in-process mock (MockTransport, json_response)
"""

from restgate.transport.base import RawResponse, Transport
from restgate.transport.httpx_transport import HttpxTransport, create_http_client
from restgate.transport.mock import MockTransport, RecordedCall, json_response

__all__ = [
    "RawResponse",
    "Transport",
    "HttpxTransport",
    "create_http_client",
    "MockTransport",
    "RecordedCall",
    "json_response",
]
