"""Rate-limited request dispatcher.

Every outbound call goes through ``Dispatcher.submit``. Requests wait in a
FIFO queue per bucket, are admitted when both the global bucket and their
route bucket have a unit left, run on the transport, and feed the quota
metadata of each response back into the buckets. Throttled and transiently
failed requests are re-queued; every outcome reaches the caller through the
request's Completion.
"""

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Set

from restgate.core.logging import get_log_context, get_logger
from restgate.dispatch.completion import Completion
from restgate.dispatch.models import EntryState, PendingEntry, Request
from restgate.dispatch.retry import RetryPolicy
from restgate.exceptions import (
    DispatcherClosedError,
    RateLimitedError,
    TransportError,
    error_from_response,
)
from restgate.ratelimit.bucket import Bucket
from restgate.ratelimit.headers import RateLimitInfo, parse_rate_limit
from restgate.ratelimit.registry import BucketRegistry
from restgate.transport.base import RawResponse, Transport

logger = get_logger(__name__)


class Dispatcher:
    """Serializes requests through per-route buckets and the global bucket.

    This class provides:
    - Non-blocking, thread-safe submission returning a Completion
    - One FIFO queue and one drain task per bucket
    - Concurrent execution across buckets
    - Bucket updates from the quota headers of every response
    - Re-keying of routes onto the bucket ids declared by the service
    - Retries with backoff for transport failures and 5xx responses
    - Server-paced retries for 429 responses

    Usage:
        async with Dispatcher(HttpxTransport()) as dispatcher:
            completion = dispatcher.submit(request)
            response = await completion
    """

    def __init__(
        self,
        transport: Transport,
        registry: Optional[BucketRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[Callable[[], float]] = None,
        wall_clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize the dispatcher.

        Args:
            transport: Transport executing the requests
            registry: Bucket registry holding the quota state
            retry_policy: Retry configuration (defaults from settings)
            clock: Monotonic clock used for bucket timestamps
            wall_clock: Epoch clock used to read absolute reset headers
        """
        self._transport = transport
        self._registry = registry or BucketRegistry()
        self._retry_policy = retry_policy or RetryPolicy.from_settings()
        self._clock = clock or time.monotonic
        self._wall_clock = wall_clock or time.time

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queues: Dict[str, Deque[PendingEntry]] = {}
        self._wakeups: Dict[str, asyncio.Event] = {}
        self._drainers: Dict[str, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._pending: Set[PendingEntry] = set()
        self._closed = False

        # Counters for monitoring
        self._submitted = 0
        self._resolved = 0
        self._rejected = 0
        self._retried = 0
        self._throttled = 0

    @property
    def registry(self) -> BucketRegistry:
        return self._registry

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> "Dispatcher":
        """Bind the dispatcher to the running event loop."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self

    async def __aenter__(self) -> "Dispatcher":
        return await self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, request: Request) -> Completion:
        """Queue a request and return its completion immediately.

        Safe to call from any thread once the dispatcher is bound to a loop
        (by ``start`` or by a first submit from inside the loop).

        Raises:
            RuntimeError: If the dispatcher has no event loop to run on
        """
        entry = PendingEntry(request=request)
        if self._closed:
            entry.completion.reject(DispatcherClosedError())
            return entry.completion

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is None:
            if running is None:
                raise RuntimeError(
                    "Dispatcher not started. Call 'await dispatcher.start()' inside an event loop."
                )
            self._loop = running

        if running is self._loop:
            self._accept(entry)
        else:
            try:
                self._loop.call_soon_threadsafe(self._accept, entry)
            except RuntimeError:
                entry.completion.reject(DispatcherClosedError("Dispatcher event loop is closed"))
        return entry.completion

    def _accept(self, entry: PendingEntry) -> None:
        if self._closed:
            entry.completion.reject(DispatcherClosedError())
            return
        self._submitted += 1
        self._pending.add(entry)
        self._enqueue(entry)

    def _enqueue(self, entry: PendingEntry) -> None:
        """Insert an entry into its bucket queue in submission order."""
        key = self._registry.scope_key_for(entry.request.route)
        queue = self._queues.setdefault(key, deque())

        if not queue or queue[-1].sequence < entry.sequence:
            queue.append(entry)
        else:
            for index, queued in enumerate(queue):
                if queued.sequence > entry.sequence:
                    queue.insert(index, entry)
                    break

        entry.state = EntryState.QUEUED
        self._wake(key)
        self._ensure_drainer(key)

    def _ensure_drainer(self, key: str) -> None:
        task = self._drainers.get(key)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._drain(key))
            self._drainers[key] = task
            task.add_done_callback(lambda t, k=key: self._on_drainer_done(k, t))

    def _on_drainer_done(self, key: str, task: asyncio.Task) -> None:
        if self._drainers.get(key) is task:
            del self._drainers[key]

    def _wake(self, key: str) -> None:
        event = self._wakeups.get(key)
        if event is not None:
            event.set()

    def _wake_all(self) -> None:
        for event in self._wakeups.values():
            event.set()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def _drain(self, key: str) -> None:
        """Admit the entries of one bucket queue, head first."""
        queue = self._queues[key]
        wakeup = self._wakeups.setdefault(key, asyncio.Event())
        global_bucket = self._registry.get_global()

        try:
            while queue and not self._closed:
                entry = queue[0]

                # The route was re-keyed onto another bucket since it queued
                if self._registry.scope_key_for(entry.request.route) != key:
                    queue.popleft()
                    self._enqueue(entry)
                    continue

                now = self._clock()
                if entry.not_before > now:
                    await self._sleep(wakeup, entry.not_before - now)
                    continue

                bucket = self._registry.get_or_create(key)
                wait_until = self._admit(bucket, global_bucket, now)
                if wait_until is not None:
                    logger.debug(
                        f"Bucket '{key}' blocked for {wait_until - now:.3f}s",
                        extra=get_log_context(bucket=key, route=entry.request.route),
                    )
                    await self._sleep(wakeup, wait_until - now)
                    continue

                queue.popleft()
                self._start_execution(entry, bucket)
        except Exception as e:
            logger.exception(f"Drain of bucket '{key}' failed")
            while queue:
                self._reject(queue.popleft(), e)
        finally:
            if not queue and self._queues.get(key) is queue:
                del self._queues[key]
                self._wakeups.pop(key, None)

    def _admit(self, bucket: Bucket, global_bucket: Bucket, now: float) -> Optional[float]:
        """Take one unit from the global bucket and one from the route bucket.

        The route bucket is checked first so that a closed route never
        spends a global unit. Returns None when admitted, otherwise the
        clock time to wait until.
        """
        if not bucket.has_capacity(now):
            blocked_until = bucket.next_available_at()
            if not global_bucket.has_capacity(now):
                blocked_until = max(blocked_until, global_bucket.next_available_at())
            return blocked_until
        if not global_bucket.try_admit(now):
            return global_bucket.next_available_at()
        if not bucket.try_admit(now):
            return bucket.next_available_at()
        return None

    async def _sleep(self, wakeup: asyncio.Event, delay: float) -> None:
        wakeup.clear()
        try:
            await asyncio.wait_for(wakeup.wait(), timeout=max(0.0, delay))
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _start_execution(self, entry: PendingEntry, bucket: Bucket) -> None:
        entry.state = EntryState.EXECUTING
        entry.attempts += 1
        task = asyncio.get_running_loop().create_task(self._execute(entry, bucket.key))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _execute(self, entry: PendingEntry, scope_key: str) -> None:
        request = entry.request
        started = self._clock()
        try:
            response = await self._transport.execute(
                request.method, request.url, request.headers, request.body
            )
        except TransportError as e:
            self._on_transport_error(entry, e)
            return
        except Exception as e:
            logger.exception(
                f"Transport raised unexpectedly for {request}",
                extra=get_log_context(route=request.route, bucket=scope_key),
            )
            self._reject(entry, e)
            return

        if not isinstance(response, RawResponse):
            logger.error(
                f"Transport returned {type(response).__name__} instead of RawResponse for {request}",
                extra=get_log_context(route=request.route, bucket=scope_key),
            )
            self._reject(entry, TypeError(f"Transport returned {type(response).__name__}, expected RawResponse"))
            return

        duration_ms = round((self._clock() - started) * 1000, 2)
        logger.debug(
            f"{request} -> {response.status}",
            extra=get_log_context(
                route=request.route,
                bucket=scope_key,
                method=request.method,
                status_code=response.status,
                attempt=entry.attempts,
                duration_ms=duration_ms,
            ),
        )
        try:
            self._handle_response(entry, response)
        except Exception as e:
            logger.exception(
                f"Failed to handle response for {request}",
                extra=get_log_context(route=request.route, bucket=scope_key),
            )
            if entry.state is EntryState.EXECUTING:
                self._reject(entry, e)

    # ------------------------------------------------------------------
    # Response handling
    # ------------------------------------------------------------------

    def _handle_response(self, entry: PendingEntry, response: RawResponse) -> None:
        info = parse_rate_limit(response)
        now = self._clock()
        status = response.status

        if status == 429:
            self._on_throttled(entry, info, response, now)
            return

        self._apply_feedback(entry.request.route, info, now)

        if 200 <= status < 300:
            self._resolve(entry, response)
        elif self._retry_policy.is_retryable_status(status):
            if self._retry_policy.can_retry(self._executions(entry)):
                delay = self._retry_policy.calculate_delay(entry.retries)
                entry.retries += 1
                logger.warning(
                    f"Retry {entry.retries}/{self._retry_policy.max_attempts - 1} for {entry.request} "
                    f"after status {status}. Waiting {delay:.2f}s...",
                    extra=get_log_context(route=entry.request.route, status_code=status),
                )
                self._requeue(entry, delay)
            else:
                logger.warning(
                    f"Max attempts ({self._retry_policy.max_attempts}) exceeded for {entry.request}: status {status}",
                    extra=get_log_context(route=entry.request.route, status_code=status),
                )
                self._reject(entry, error_from_response(response, entry.retries))
        else:
            self._reject(entry, error_from_response(response, entry.retries))

    def _apply_feedback(self, route: str, info: RateLimitInfo, now: float) -> Optional[Bucket]:
        """Update the route's bucket from response metadata.

        Missing or malformed counters leave the bucket at its last known
        state.
        """
        current_key = self._registry.scope_key_for(route)
        if info.bucket is not None and info.bucket != current_key:
            bucket = self._registry.rekey(route, info.bucket)
            self._wake(current_key)
        else:
            bucket = self._registry.get_or_create(current_key)

        if not info.has_counters:
            if info.remaining is not None or info.limit is not None:
                logger.debug(
                    f"Incomplete quota metadata for '{route}', keeping bucket state",
                    extra=get_log_context(route=route, bucket=bucket.key),
                )
            return bucket

        bucket.apply_server_feedback(
            remaining=info.remaining,
            reset_at=now + info.reset_in(self._wall_clock()),
            capacity=info.limit,
        )
        self._wake(bucket.key)
        return bucket

    def _on_throttled(
        self,
        entry: PendingEntry,
        info: RateLimitInfo,
        response: RawResponse,
        now: float,
    ) -> None:
        request = entry.request
        retry_after = info.retry_after
        if retry_after is None:
            retry_after = info.reset_in(self._wall_clock())
        if retry_after is None:
            retry_after = self._retry_policy.calculate_delay(entry.throttles)

        self._throttled += 1
        logger.warning(
            f"{'Global' if info.is_global else 'Route'} rate limit hit for {request}, "
            f"retry after {retry_after:.3f}s",
            extra=get_log_context(
                route=request.route,
                status_code=429,
                retry_after=retry_after,
                scope=info.scope,
            ),
        )

        if info.is_global:
            self._registry.get_global().apply_server_feedback(0, now + retry_after)
            self._wake_all()
        else:
            bucket = self._apply_feedback(request.route, info, now)
            # A shared-resource limit does not drain the route's own quota
            if info.scope != "shared":
                bucket.apply_server_feedback(0, now + retry_after, info.limit)
                self._wake(bucket.key)

        if not self._retry_policy.can_requeue_throttled(entry.throttles):
            logger.warning(
                f"Throttle cap ({self._retry_policy.max_throttle_retries}) exceeded for {request}",
                extra=get_log_context(route=request.route, status_code=429),
            )
            self._reject(
                entry,
                RateLimitedError(
                    response.status,
                    response.body,
                    response.json(),
                    entry.retries,
                    response,
                    retry_after=retry_after,
                    is_global=info.is_global,
                ),
            )
            return

        entry.throttles += 1
        self._requeue(entry, retry_after)

    def _on_transport_error(self, entry: PendingEntry, error: TransportError) -> None:
        request = entry.request
        if self._retry_policy.can_retry(self._executions(entry)):
            delay = self._retry_policy.calculate_delay(entry.retries)
            entry.retries += 1
            logger.warning(
                f"Retry {entry.retries}/{self._retry_policy.max_attempts - 1} for {request} "
                f"after {error}. Waiting {delay:.2f}s...",
                extra=get_log_context(route=request.route, attempt=entry.attempts),
            )
            self._requeue(entry, delay)
            return

        logger.warning(
            f"Max attempts ({self._retry_policy.max_attempts}) exceeded for {request}: {error}",
            extra=get_log_context(route=request.route, attempt=entry.attempts),
        )
        executions = self._executions(entry)
        self._reject(
            entry,
            TransportError(f"{error.message} (after {executions} attempts)", attempts=executions),
        )

    @staticmethod
    def _executions(entry: PendingEntry) -> int:
        """Executions counted against max_attempts; 429 answers are not."""
        return entry.attempts - entry.throttles

    def _requeue(self, entry: PendingEntry, delay: float) -> None:
        if entry.state is not EntryState.EXECUTING:
            return
        if self._closed:
            self._reject(entry, DispatcherClosedError())
            return
        self._retried += 1
        entry.not_before = self._clock() + delay
        self._enqueue(entry)

    def _resolve(self, entry: PendingEntry, response: RawResponse) -> None:
        entry.state = EntryState.RESOLVED
        self._pending.discard(entry)
        self._resolved += 1
        entry.completion.resolve(response)

    def _reject(self, entry: PendingEntry, error: BaseException) -> None:
        entry.state = EntryState.REJECTED
        self._pending.discard(entry)
        self._rejected += 1
        entry.completion.reject(error)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop dispatching and reject every request still pending."""
        if self._closed:
            return
        self._closed = True

        tasks = list(self._drainers.values()) + list(self._inflight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for entry in list(self._pending):
            self._reject(entry, DispatcherClosedError())
        self._queues.clear()
        self._wakeups.clear()
        logger.debug("Dispatcher closed")

    def stats(self) -> dict:
        """Get current dispatcher statistics."""
        return {
            "submitted": self._submitted,
            "resolved": self._resolved,
            "rejected": self._rejected,
            "retried": self._retried,
            "throttled": self._throttled,
            "pending": len(self._pending),
            "in_flight": len(self._inflight),
            "queues": {key: len(queue) for key, queue in self._queues.items()},
            "buckets": len(self._registry),
        }
