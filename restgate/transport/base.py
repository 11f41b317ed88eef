import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx


@dataclass
class RawResponse:
    """One HTTP response as seen by the dispatcher.

    Headers are kept as ``httpx.Headers`` so lookups are case-insensitive
    whatever transport produced them.
    """

    status: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers or {})

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body as JSON, or None if it is empty or not JSON."""
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except ValueError:
            return None


class Transport(ABC):
    """Capability that executes a single HTTP request.

    Implementations return every HTTP response, whatever its status, and
    raise ``restgate.exceptions.TransportError`` only when no response was
    obtained (connection refused, timeout, broken protocol).
    """

    @abstractmethod
    async def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> RawResponse:
        """Execute one request.

        Args:
            method: HTTP method (GET, POST, ...)
            url: Absolute target URL
            headers: Request headers
            body: Encoded request body, if any

        Returns:
            The raw response
        """
        pass

    async def aclose(self) -> None:
        """Release resources held by the transport."""
        return None
