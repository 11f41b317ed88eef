"""Quota metadata parsing.

The remote service reports quota state on every response:

    X-RateLimit-Limit        uses per window (int)
    X-RateLimit-Remaining    uses left (int)
    X-RateLimit-Reset        epoch seconds of the reset (float)
    X-RateLimit-Reset-After  seconds until the reset (float)
    X-RateLimit-Bucket       opaque id of the remote bucket
    X-RateLimit-Global       "true" on a global throttle
    X-RateLimit-Scope        user | global | shared

Throttle responses also carry ``retry_after`` (JSON body, seconds) or a
``Retry-After`` header. Values that are missing or malformed come back as
None and never raise.
"""

import math
import time
from dataclasses import dataclass
from typing import Optional

from restgate.core.logging import get_logger
from restgate.transport.base import RawResponse

logger = get_logger(__name__)

LIMIT_HEADER = "X-RateLimit-Limit"
REMAINING_HEADER = "X-RateLimit-Remaining"
RESET_HEADER = "X-RateLimit-Reset"
RESET_AFTER_HEADER = "X-RateLimit-Reset-After"
BUCKET_HEADER = "X-RateLimit-Bucket"
GLOBAL_HEADER = "X-RateLimit-Global"
SCOPE_HEADER = "X-RateLimit-Scope"
RETRY_AFTER_HEADER = "Retry-After"


@dataclass
class RateLimitInfo:
    """Quota metadata parsed from one response."""
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset: Optional[float] = None
    reset_after: Optional[float] = None
    bucket: Optional[str] = None
    is_global: bool = False
    scope: Optional[str] = None
    retry_after: Optional[float] = None

    @property
    def has_counters(self) -> bool:
        """Whether the response carried enough to update a bucket."""
        return self.remaining is not None and (
            self.reset_after is not None or self.reset is not None
        )

    def reset_in(self, wall_now: Optional[float] = None) -> Optional[float]:
        """Seconds until the reported reset, preferring the relative header."""
        if self.reset_after is not None:
            return max(0.0, self.reset_after)
        if self.reset is not None:
            wall_now = time.time() if wall_now is None else wall_now
            return max(0.0, self.reset - wall_now)
        return None


def _parse_int(response: RawResponse, name: str) -> Optional[int]:
    raw = response.headers.get(name)
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        try:
            # Some proxies render integers as floats
            as_float = float(raw.strip())
        except ValueError:
            logger.warning(f"Ignoring malformed {name} header: {raw!r}")
            return None
        if not math.isfinite(as_float) or not as_float.is_integer():
            logger.warning(f"Ignoring malformed {name} header: {raw!r}")
            return None
        value = int(as_float)
    if value < 0:
        logger.warning(f"Ignoring negative {name} header: {raw!r}")
        return None
    return value


def _parse_float(raw, name: str) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed {name} value: {raw!r}")
        return None
    if not math.isfinite(value) or value < 0:
        logger.warning(f"Ignoring out-of-range {name} value: {raw!r}")
        return None
    return value


def _parse_bool(raw) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in ("true", "1", "yes")
    return False


def parse_rate_limit(response: RawResponse) -> RateLimitInfo:
    """Extract quota metadata from a response.

    Args:
        response: The response to inspect

    Returns:
        RateLimitInfo with every field that could be parsed
    """
    info = RateLimitInfo(
        limit=_parse_int(response, LIMIT_HEADER),
        remaining=_parse_int(response, REMAINING_HEADER),
        reset=_parse_float(response.headers.get(RESET_HEADER), RESET_HEADER),
        reset_after=_parse_float(response.headers.get(RESET_AFTER_HEADER), RESET_AFTER_HEADER),
        scope=response.headers.get(SCOPE_HEADER),
        is_global=_parse_bool(response.headers.get(GLOBAL_HEADER)),
    )

    bucket = response.headers.get(BUCKET_HEADER)
    if bucket is not None:
        bucket = bucket.strip()
    info.bucket = bucket or None

    if response.status == 429:
        payload = response.json()
        if isinstance(payload, dict):
            info.retry_after = _parse_float(payload.get("retry_after"), "retry_after")
            if _parse_bool(payload.get("global")):
                info.is_global = True
        if info.retry_after is None:
            info.retry_after = _parse_float(
                response.headers.get(RETRY_AFTER_HEADER), RETRY_AFTER_HEADER
            )
        if info.scope == "global":
            info.is_global = True

    return info
