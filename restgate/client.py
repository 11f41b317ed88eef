"""REST client facade.

Builds authenticated JSON and multipart requests for the remote API and
issues them through the rate-limited dispatcher.
"""

import hashlib
import json
import os
from typing import Any, BinaryIO, Mapping, Optional, Tuple, Union

import httpx

from restgate.core.cache import CacheBackend, InMemoryCache
from restgate.core.config import settings
from restgate.core.logging import get_logger
from restgate.dispatch.completion import Completion
from restgate.dispatch.dispatcher import Dispatcher
from restgate.dispatch.models import Request
from restgate.dispatch.retry import RetryPolicy
from restgate.ratelimit.registry import BucketRegistry
from restgate.routes import Route
from restgate.transport.base import Transport
from restgate.transport.httpx_transport import HttpxTransport
from restgate.transport.mock import MockTransport

logger = get_logger(__name__)

FileContent = Union[bytes, BinaryIO]
FilePart = Union[FileContent, Tuple[str, FileContent], Tuple[str, FileContent, str]]


class RestClient:
    """Client for the remote JSON API.

    If transport or dispatcher are provided they are used as-is and left
    open on ``aclose``; otherwise the client creates and owns them.

    Usage:
        async with RestClient(token) as client:
            message = await client.post(
                "/channels/{channel_id}/messages",
                {"content": "hello"},
                channel_id=1234,
            )
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: Optional[str] = None,
        api_version: Optional[int] = None,
        transport: Optional[Transport] = None,
        dispatcher: Optional[Dispatcher] = None,
        registry: Optional[BucketRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[CacheBackend] = None,
    ):
        """Initialize the client.

        Args:
            token: Bot token attached to authenticated requests
            base_url: API base URL (defaults to settings.api_base_url)
            api_version: API version segment (defaults to settings.api_version)
            transport: Transport for a client-created dispatcher
            dispatcher: Shared dispatcher to submit through
            registry: Bucket registry for a client-created dispatcher
            retry_policy: Retry policy for a client-created dispatcher
            cache: Cache for GET responses (in-memory when caching is enabled)
        """
        self.token = token
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.api_version = api_version or settings.api_version

        self._owns_transport = False
        self._owns_dispatcher = dispatcher is None
        if dispatcher is None:
            if transport is None:
                transport = MockTransport() if settings.mock_transport else HttpxTransport()
                self._owns_transport = True
            dispatcher = Dispatcher(transport, registry=registry, retry_policy=retry_policy)
        self._dispatcher = dispatcher

        if cache is None and settings.cache_enabled:
            cache = InMemoryCache()
        self._cache = cache

        self.headers = self._build_headers()

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def user_agent(self) -> str:
        return (
            f"DiscordBot ({settings.user_agent_url}, {settings.library_version}) "
            f"RestGate/{settings.library_version}"
        )

    def _build_headers(self) -> dict:
        return {
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
        }

    def build_url(self, route: Route) -> str:
        return f"{self.base_url}/v{self.api_version}/{route.url_path.lstrip('/')}"

    def build_request(
        self,
        route: Route,
        json_body: Any = None,
        *,
        auth: bool = True,
        headers: Optional[Mapping[str, str]] = None,
        reason: Optional[str] = None,
        files: Optional[Mapping[str, FilePart]] = None,
        data: Optional[Mapping[str, str]] = None,
    ) -> Request:
        """Build the Request for a route.

        With ``files`` the body is multipart/form-data: ``data`` becomes form
        fields and ``json_body``, if any, is sent as the ``payload_json``
        field. Otherwise the body is ``json_body`` encoded as JSON.

        Args:
            route: Route to call
            json_body: Payload encoded as JSON, if any
            auth: Whether to attach the Authorization header
            headers: Extra headers, applied last
            reason: Audit log reason
            files: Multipart file parts, keyed by field name
            data: Plain form fields sent alongside files
        """
        url = self.build_url(route)
        request_headers = dict(self.headers)
        if auth:
            request_headers["Authorization"] = f"Bot {self.token}"
        if reason:
            request_headers["X-Audit-Log-Reason"] = reason

        if files:
            form = dict(data or {})
            if json_body is not None:
                form["payload_json"] = json.dumps(json_body)
            # httpx picks the boundary and encodes the parts
            encoded = httpx.Request(route.method, url, data=form, files=files)
            body = encoded.read()
            request_headers["Content-Type"] = encoded.headers["Content-Type"]
        else:
            body = None if json_body is None else json.dumps(json_body).encode()

        request_headers.update(headers or {})
        return Request(
            method=route.method,
            route=route.bucket_key,
            url=url,
            headers=request_headers,
            body=body,
        )

    def submit(self, route: Route, json_body: Any = None, **options) -> Completion:
        """Submit without waiting; the completion settles with the RawResponse."""
        return self._dispatcher.submit(self.build_request(route, json_body, **options))

    @staticmethod
    def _resolve_cache_ttl(cache_ttl: Union[int, bool, None]) -> int:
        if cache_ttl is None or cache_ttl is True:
            return settings.cache_default_ttl
        if cache_ttl is False:
            return 0
        return max(0, int(cache_ttl))

    async def request(
        self,
        route: Route,
        json_body: Any = None,
        *,
        auth: bool = True,
        headers: Optional[Mapping[str, str]] = None,
        reason: Optional[str] = None,
        cache_ttl: Union[int, bool, None] = None,
        files: Optional[Mapping[str, FilePart]] = None,
        data: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Call a route and return the decoded JSON body.

        GET responses are cached for ``cache_ttl`` seconds: the settings
        default when None or True, never when False or 0.

        Raises:
            HTTPException: On an unsuccessful final response
            TransportError: When no response could be obtained
        """
        request = self.build_request(
            route,
            json_body,
            auth=auth,
            headers=headers,
            reason=reason,
            files=files,
            data=data,
        )

        ttl = self._resolve_cache_ttl(cache_ttl)
        cache_key = None
        if route.method == "GET" and self._cache is not None and ttl > 0:
            cache_key = "restgate." + hashlib.sha1(request.url.encode()).hexdigest()
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for {request}")
                return json.loads(cached)

        response = await self._dispatcher.submit(request)

        if cache_key is not None and response.body:
            await self._cache.set(cache_key, response.body, ttl)
        return response.json()

    async def get(self, path: str, *, cache_ttl: Union[int, bool, None] = None, **parameters) -> Any:
        return await self.request(Route("GET", path, **parameters), cache_ttl=cache_ttl)

    async def post(
        self,
        path: str,
        json_body: Any = None,
        *,
        reason: Optional[str] = None,
        files: Optional[Mapping[str, FilePart]] = None,
        **parameters,
    ) -> Any:
        return await self.request(Route("POST", path, **parameters), json_body, reason=reason, files=files)

    async def put(self, path: str, json_body: Any = None, *, reason: Optional[str] = None, **parameters) -> Any:
        return await self.request(Route("PUT", path, **parameters), json_body, reason=reason)

    async def patch(
        self,
        path: str,
        json_body: Any = None,
        *,
        reason: Optional[str] = None,
        files: Optional[Mapping[str, FilePart]] = None,
        **parameters,
    ) -> Any:
        return await self.request(Route("PATCH", path, **parameters), json_body, reason=reason, files=files)

    async def delete(self, path: str, *, reason: Optional[str] = None, **parameters) -> Any:
        return await self.request(Route("DELETE", path, **parameters), reason=reason)

    async def send_file(
        self,
        channel_id: Union[int, str],
        file: Union[str, "os.PathLike[str]", FileContent],
        filename: Optional[str] = None,
        content: Optional[str] = None,
        tts: bool = False,
    ) -> Any:
        """Upload a file as a channel message.

        Args:
            channel_id: Target channel
            file: Path to read, raw bytes or an open binary file
            filename: Name shown for the attachment (defaults to the path's name)
            content: Message text sent with the file
            tts: Send the message as text-to-speech

        Returns:
            The created message
        """
        if isinstance(file, (str, os.PathLike)):
            filename = filename or os.path.basename(file)
            with open(file, "rb") as fh:
                file = fh.read()
        if not filename:
            raise ValueError("filename is required when file is not a path")

        form = {}
        if content is not None:
            form["content"] = content
        if tts:
            form["tts"] = "true"

        return await self.request(
            Route("POST", "/channels/{channel_id}/messages", channel_id=channel_id),
            files={"file": (filename, file)},
            data=form,
        )

    async def aclose(self) -> None:
        """Close the dispatcher and transport if this client created them."""
        if self._owns_dispatcher:
            await self._dispatcher.close()
        if self._owns_transport:
            await self._dispatcher.transport.aclose()

    async def __aenter__(self) -> "RestClient":
        await self._dispatcher.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
