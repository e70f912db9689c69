"""State notification bus for resource lifecycle transitions.

The bus is append-only: every record is kept for the lifetime of the bus and
fanned out to subscribers as it is published. Subscribers only see records
published after they subscribed; ``latest`` and ``history`` give access to
what happened before.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

import structlog

from stackweave.core.errors import InvalidStateTransitionError

logger = structlog.get_logger()


class ResourceState(str, Enum):
    """Lifecycle states, in transition order."""

    NOT_STARTED = "NotStarted"
    WAITING = "Waiting"
    STARTING = "Starting"
    RUNNING = "Running"
    FINISHED_SUCCESS = "FinishedSuccess"
    FINISHED_FAILURE = "FinishedFailure"

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


_STATE_RANK = {
    ResourceState.NOT_STARTED: 0,
    ResourceState.WAITING: 1,
    ResourceState.STARTING: 2,
    ResourceState.RUNNING: 3,
    ResourceState.FINISHED_SUCCESS: 4,
    ResourceState.FINISHED_FAILURE: 4,
}

TERMINAL_STATES = frozenset({ResourceState.FINISHED_SUCCESS, ResourceState.FINISHED_FAILURE})


class StateStyle(str, Enum):
    """Severity hint for observers rendering a transition."""

    INFO = "info"
    SUCCESS = "success"
    WARN = "warn"
    ERROR = "error"


DEFAULT_STYLES = {
    ResourceState.NOT_STARTED: StateStyle.INFO,
    ResourceState.WAITING: StateStyle.INFO,
    ResourceState.STARTING: StateStyle.INFO,
    ResourceState.RUNNING: StateStyle.SUCCESS,
    ResourceState.FINISHED_SUCCESS: StateStyle.SUCCESS,
    ResourceState.FINISHED_FAILURE: StateStyle.ERROR,
}


@dataclass(frozen=True)
class StateTransition:
    """A single lifecycle transition of one resource."""

    resource_id: str
    state: ResourceState
    style: StateStyle
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[BaseException] = None

    @classmethod
    def of(
        cls,
        resource_id: str,
        state: ResourceState,
        *,
        error: Optional[BaseException] = None,
        style: Optional[StateStyle] = None,
    ) -> "StateTransition":
        return cls(
            resource_id=resource_id,
            state=state,
            style=style or DEFAULT_STYLES[state],
            error=error,
        )


class Subscription:
    """Async stream of transitions delivered to one subscriber."""

    def __init__(self, bus: "StateBus", resource_id: Optional[str]) -> None:
        self._bus = bus
        self.resource_id = resource_id
        self._queue: asyncio.Queue[StateTransition] = asyncio.Queue()
        self._closed = False

    def _deliver(self, record: StateTransition) -> None:
        self._queue.put_nowait(record)

    async def next(self) -> StateTransition:
        return await self._queue.get()

    def drain(self) -> List[StateTransition]:
        """Return every record delivered but not yet consumed, without waiting."""
        records = []
        while not self._queue.empty():
            records.append(self._queue.get_nowait())
        return records

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._bus._unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[StateTransition]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StateTransition]:
        while not self._closed:
            yield await self._queue.get()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class StateBus:
    """Append-only stream of resource state transitions."""

    def __init__(self) -> None:
        self._records: List[StateTransition] = []
        self._latest: Dict[str, StateTransition] = {}
        self._subscribers: Dict[Optional[str], List[Subscription]] = defaultdict(list)

    def publish(self, record: StateTransition) -> None:
        """Append a record and deliver it to current subscribers.

        Raises InvalidStateTransitionError if the record would move the
        resource backwards or out of a terminal state.
        """
        current = self._latest.get(record.resource_id)
        if current is not None:
            if current.state.is_terminal or record.state.rank <= current.state.rank:
                raise InvalidStateTransitionError(
                    record.resource_id, current.state.value, record.state.value
                )

        self._records.append(record)
        self._latest[record.resource_id] = record

        logger.debug(
            "resource_state_changed",
            resource=record.resource_id,
            state=record.state.value,
            style=record.style.value,
            error=str(record.error) if record.error else None,
        )

        for subscription in list(self._subscribers.get(record.resource_id, ())):
            subscription._deliver(record)
        for subscription in list(self._subscribers.get(None, ())):
            subscription._deliver(record)

    def subscribe(self, resource_id: str) -> Subscription:
        """Subscribe to future transitions of one resource."""
        subscription = Subscription(self, resource_id)
        self._subscribers[resource_id].append(subscription)
        return subscription

    def subscribe_all(self) -> Subscription:
        """Subscribe to future transitions of every resource."""
        subscription = Subscription(self, None)
        self._subscribers[None].append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.resource_id)
        if subscribers and subscription in subscribers:
            subscribers.remove(subscription)

    def latest(self, resource_id: str) -> Optional[StateTransition]:
        return self._latest.get(resource_id)

    def state_of(self, resource_id: str) -> Optional[ResourceState]:
        record = self._latest.get(resource_id)
        return record.state if record else None

    def history(self, resource_id: Optional[str] = None) -> List[StateTransition]:
        if resource_id is None:
            return list(self._records)
        return [r for r in self._records if r.resource_id == resource_id]

    def subscriber_count(self, resource_id: str) -> int:
        return len(self._subscribers.get(resource_id, ()))
