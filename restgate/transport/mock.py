"""Mock transport for testing purposes.

This transport answers requests without touching the network. It is useful
for tests and load runs where calling the real API is not desirable.

Enable for a client by setting the environment variable:
    RESTGATE_MOCK_TRANSPORT=true
"""

import asyncio
import json
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from restgate.exceptions import TransportError
from restgate.transport.base import RawResponse, Transport

ScriptItem = Union[RawResponse, Exception]
Handler = Callable[["RecordedCall"], Union[RawResponse, Awaitable[RawResponse]]]


@dataclass
class RecordedCall:
    """One request received by the mock transport."""

    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[bytes]
    at: float = field(default_factory=time.monotonic)


def json_response(
    status: int = 200,
    payload: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> RawResponse:
    """Build a RawResponse with a JSON body."""
    body = b"" if payload is None else json.dumps(payload).encode()
    merged = {"Content-Type": "application/json"}
    merged.update(headers or {})
    return RawResponse(status=status, headers=merged, body=body)


class MockTransport(Transport):
    """Transport that serves scripted or generated responses.

    Features:
    - A script of responses and exceptions, consumed in order
    - A handler callable used once the script is exhausted
    - Simulated latency (min_delay..max_delay)
    - Configurable random failure rate for testing error handling
    - A log of every call received
    """

    def __init__(
        self,
        script: Optional[Iterable[ScriptItem]] = None,
        handler: Optional[Handler] = None,
        min_delay: float = 0.0,
        max_delay: float = 0.0,
        failure_rate: float = 0.0,
    ):
        """Initialize the mock transport.

        Args:
            script: Responses or exceptions to return, in order
            handler: Fallback producing a response for each call
            min_delay: Minimum response delay in seconds
            max_delay: Maximum response delay in seconds
            failure_rate: Probability of raising a TransportError (0-1)
        """
        self._script: List[ScriptItem] = list(script or [])
        self._handler = handler
        self.min_delay = min_delay
        self.max_delay = max(max_delay, min_delay)
        self.failure_rate = failure_rate
        self.calls: List[RecordedCall] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def add(self, *items: ScriptItem) -> None:
        """Append responses or exceptions to the script."""
        self._script.extend(items)

    async def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> RawResponse:
        call = RecordedCall(method=method, url=url, headers=dict(headers), body=body)
        self.calls.append(call)

        if self.max_delay > 0:
            await asyncio.sleep(random.uniform(self.min_delay, self.max_delay))

        if self.failure_rate > 0 and random.random() < self.failure_rate:
            raise TransportError("Simulated connection failure")

        if self._script:
            item = self._script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        if self._handler is not None:
            result = self._handler(call)
            if asyncio.iscoroutine(result):
                result = await result
            return result

        return json_response(200, {})
