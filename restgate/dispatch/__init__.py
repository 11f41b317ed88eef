"""Dispatch package.

This package provides:
- The single-assignment completion handed back to callers (Completion)
- Request and pending-entry models (Request, PendingEntry)
- Retry configuration (RetryPolicy)
- The rate-limited dispatcher (Dispatcher)
"""

from restgate.dispatch.completion import Completion, CompletionState
from restgate.dispatch.dispatcher import Dispatcher
from restgate.dispatch.models import EntryState, PendingEntry, Request
from restgate.dispatch.retry import RetryPolicy

__all__ = [
    "Completion",
    "CompletionState",
    "Dispatcher",
    "EntryState",
    "PendingEntry",
    "Request",
    "RetryPolicy",
]
