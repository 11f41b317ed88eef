"""Rate limit package.

This package provides:
- Buckets tracking remaining uses and reset time per scope (Bucket)
- The registry owning every bucket and remote bucket aliases (BucketRegistry)
- Quota metadata parsing from responses (RateLimitInfo, parse_rate_limit)
"""

from restgate.ratelimit.bucket import GLOBAL_SCOPE, Bucket, BucketSnapshot
from restgate.ratelimit.headers import RateLimitInfo, parse_rate_limit
from restgate.ratelimit.registry import BucketRegistry

__all__ = [
    "GLOBAL_SCOPE",
    "Bucket",
    "BucketSnapshot",
    "BucketRegistry",
    "RateLimitInfo",
    "parse_rate_limit",
]
