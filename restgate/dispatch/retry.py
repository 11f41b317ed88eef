"""Retry policy with exponential backoff for dispatched requests.

Transport failures and 5xx responses are retried with exponential backoff up
to ``max_attempts`` executions. Throttled (429) requests follow the delay the
server declares and only count against ``max_throttle_retries``.
"""

from dataclasses import dataclass

from restgate.core.config import settings


@dataclass
class RetryPolicy:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_attempts: Executions allowed for transport and 5xx failures (default: 3)
        base_delay: Initial delay between retries in seconds (default: 0.5)
        max_delay: Maximum delay between retries in seconds (default: 10.0)
        exponential_base: Base for exponential calculation (default: 2.0)
        max_throttle_retries: Hard cap on 429 re-queues (default: 10)

    Example:
        >>> policy = RetryPolicy(max_attempts=5, base_delay=1.0)
        >>> delay = policy.calculate_delay(attempt=2)  # Returns 4.0
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    max_throttle_retries: int = 10

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            max_throttle_retries=settings.max_throttle_retries,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Calculate the delay for a given retry attempt.

        Uses exponential backoff: delay = min(base_delay * (exponential_base ^ attempt), max_delay)

        Args:
            attempt: The current retry attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base**attempt)
        return min(delay, self.max_delay)

    def is_retryable_status(self, status: int) -> bool:
        """Only 5xx statuses are retried; other non-2xx answers are final."""
        return 500 <= status < 600

    def can_retry(self, attempts: int) -> bool:
        """Whether another execution is allowed after ``attempts`` executions."""
        return attempts < self.max_attempts

    def can_requeue_throttled(self, throttles: int) -> bool:
        """Whether a throttled request may wait and go again."""
        return throttles < self.max_throttle_retries
