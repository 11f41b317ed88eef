"""Single-assignment completion bridging dispatch back to callers.

A ``Completion`` is settled exactly once, by the dispatcher, and can be
observed any number of times: through continuations, by awaiting it from
any asyncio loop, or by blocking on ``result()`` from another thread.
"""

import asyncio
import threading
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from restgate.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SuccessCallback = Callable[[Any], Any]
FailureCallback = Callable[[BaseException], Any]


class CompletionState(str, Enum):
    """Lifecycle of a completion."""

    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Completion(Generic[T]):
    """Thread-safe one-shot future.

    Usage:
        completion = dispatcher.submit(request)

        # Continuations, before or after settlement
        completion.on_settled(handle_response, handle_error)

        # From a coroutine
        response = await completion

        # From a thread outside the event loop
        response = completion.result(timeout=10)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._state = CompletionState.PENDING
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None
        self._callbacks: List[Tuple[Optional[SuccessCallback], Optional[FailureCallback]]] = []

    @property
    def state(self) -> CompletionState:
        return self._state

    @property
    def value(self) -> Optional[T]:
        return self._value

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def done(self) -> bool:
        return self._state is not CompletionState.PENDING

    def resolve(self, value: T) -> bool:
        """Settle successfully.

        Returns:
            True if this call settled the completion, False if it was
            already settled (the call then has no effect)
        """
        return self._settle(CompletionState.RESOLVED, value, None)

    def reject(self, error: BaseException) -> bool:
        """Settle with an error. Same return contract as ``resolve``."""
        return self._settle(CompletionState.REJECTED, None, error)

    def _settle(
        self,
        state: CompletionState,
        value: Optional[T],
        error: Optional[BaseException],
    ) -> bool:
        with self._lock:
            if self._state is not CompletionState.PENDING:
                return False
            self._value = value
            self._error = error
            self._state = state
            callbacks, self._callbacks = self._callbacks, []
            self._settled.set()

        for on_success, on_failure in callbacks:
            self._invoke(on_success, on_failure)
        return True

    def on_settled(
        self,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ) -> "Completion[T]":
        """Register continuations.

        Registrations made after settlement run immediately, on the calling
        thread. Otherwise they run on the thread that settles the completion.
        """
        with self._lock:
            if self._state is CompletionState.PENDING:
                self._callbacks.append((on_success, on_failure))
                return self
        self._invoke(on_success, on_failure)
        return self

    def _invoke(
        self,
        on_success: Optional[SuccessCallback],
        on_failure: Optional[FailureCallback],
    ) -> None:
        try:
            if self._state is CompletionState.RESOLVED:
                if on_success is not None:
                    on_success(self._value)
            elif on_failure is not None:
                on_failure(self._error)
        except Exception:
            logger.exception("Completion continuation raised")

    def result(self, timeout: Optional[float] = None) -> T:
        """Block until settled and return the value or raise the error.

        Must not be called from the thread running the dispatcher's loop,
        since that loop is what settles the completion.

        Raises:
            TimeoutError: If the completion is still pending after timeout
        """
        if not self._settled.wait(timeout):
            raise TimeoutError("Completion not settled within timeout")
        return self._outcome()

    def _outcome(self) -> T:
        if self._state is CompletionState.REJECTED:
            raise self._error
        return self._value

    async def wait(self) -> T:
        """Wait from a coroutine without blocking the loop."""
        if not self.done():
            loop = asyncio.get_running_loop()
            waiter = loop.create_future()

            def _wake() -> None:
                if not waiter.done():
                    waiter.set_result(None)

            def _notify(_: Any) -> None:
                loop.call_soon_threadsafe(_wake)

            self.on_settled(_notify, _notify)
            await waiter
        return self._outcome()

    def __await__(self):
        return self.wait().__await__()

    def __repr__(self) -> str:
        return f"<Completion {self._state.value}>"
