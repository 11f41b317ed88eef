"""Dispatch data models."""

import itertools
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from restgate.dispatch.completion import Completion

_sequence = itertools.count()


@dataclass(frozen=True)
class Request:
    """One outbound API call.

    ``route`` is the scope key used for bucket lookup. It comes from the
    route template and its major parameters, not from the literal URL, so
    that several URLs can share one quota scope.
    """
    method: str
    route: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def __str__(self) -> str:
        return f"REQ {self.method} {self.url}"


class EntryState(str, Enum):
    """Lifecycle of a pending entry."""
    CREATED = "created"
    QUEUED = "queued"
    EXECUTING = "executing"
    RESOLVED = "resolved"
    REJECTED = "rejected"


@dataclass(eq=False)
class PendingEntry:
    """A submitted request travelling through bucket queues.

    Attributes:
        attempts: Executions started so far
        retries: Re-queues after transport or 5xx failures
        throttles: Re-queues after 429 responses
        not_before: Clock time before which the entry may not be admitted
        sequence: Submission order, used to keep queues FIFO across re-queues
    """
    request: Request
    completion: Completion = field(default_factory=Completion)
    attempts: int = 0
    retries: int = 0
    throttles: int = 0
    not_before: float = 0.0
    state: EntryState = EntryState.CREATED
    sequence: int = field(default_factory=lambda: next(_sequence))
