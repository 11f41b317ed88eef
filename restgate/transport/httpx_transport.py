"""httpx-backed transport.

The transport either borrows a shared ``httpx.AsyncClient`` (connection reuse
across clients) or builds and owns one configured from settings.
"""

from typing import Mapping, Optional

import httpx

from restgate.core.config import settings
from restgate.core.logging import get_logger
from restgate.exceptions import TransportError
from restgate.transport.base import RawResponse, Transport

logger = get_logger(__name__)


def create_http_client(**kwargs) -> httpx.AsyncClient:
    """Create a new HTTP client with default settings.

    Note: The returned client should be closed when done.

    Args:
        **kwargs: Override default settings. Can include:
            - timeout: Single timeout value (overrides all granular timeouts)
            - connect_timeout, read_timeout, write_timeout, pool_timeout
            - max_connections, max_keepalive_connections, keepalive_expiry
            - transport: An httpx transport (e.g. httpx.MockTransport)

    Returns:
        A new httpx.AsyncClient instance with granular timeout configuration.
    """
    timeout_override = kwargs.get("timeout")
    if timeout_override is not None:
        timeout = httpx.Timeout(timeout_override)
    else:
        timeout = httpx.Timeout(
            connect=kwargs.get("connect_timeout", settings.httpx_connect_timeout),
            read=kwargs.get("read_timeout", settings.httpx_read_timeout),
            write=kwargs.get("write_timeout", settings.httpx_write_timeout),
            pool=kwargs.get("pool_timeout", settings.httpx_pool_timeout),
        )

    config = {
        "timeout": timeout,
        "limits": httpx.Limits(
            max_connections=kwargs.get(
                "max_connections", settings.httpx_max_connections
            ),
            max_keepalive_connections=kwargs.get(
                "max_keepalive_connections", settings.httpx_max_keepalive_connections
            ),
            keepalive_expiry=kwargs.get(
                "keepalive_expiry", settings.httpx_keepalive_expiry
            ),
        ),
    }
    if kwargs.get("transport") is not None:
        config["transport"] = kwargs["transport"]
    return httpx.AsyncClient(**config)


class HttpxTransport(Transport):
    """Transport over ``httpx.AsyncClient``.

    If http_client is provided it is used for all requests and left open on
    ``aclose``; otherwise the transport creates its own client and closes it.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, **client_options):
        """Initialize the transport.

        Args:
            http_client: Optional shared HTTP client for connection pooling
            **client_options: Options for ``create_http_client`` when no
                client is shared
        """
        self._owns_client = http_client is None
        self._http_client = http_client or create_http_client(**client_options)

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client

    async def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> RawResponse:
        try:
            resp = await self._http_client.request(
                method, url, headers=dict(headers), content=body
            )
        except (httpx.TransportError, httpx.TimeoutException) as e:
            logger.debug(f"Transport failure for {method} {url}: {type(e).__name__}: {e}")
            raise TransportError(f"{type(e).__name__}: {e}") from e

        return RawResponse(status=resp.status_code, headers=resp.headers, body=resp.content)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()
