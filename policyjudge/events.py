"""
Lifecycle notifications for evaluation and circuit breaker activity.

Producers (JudgeClient, PolicyOrchestrator) push typed events onto an
EventBus. Subscribers are plain callables; delivery is synchronous and
fire-and-forget, so a subscriber that raises is logged and skipped.

Usage:
    bus = EventBus()
    unsubscribe = bus.subscribe(print, types={EventType.CIRCUIT_OPEN})
    bus.emit(EventType.CIRCUIT_OPEN, failure_count=5)
    unsubscribe()
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Any, Optional, Iterable, List, Tuple, FrozenSet

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Every notification the core emits."""
    # Policy orchestrator
    EVALUATION_START = "policy.evaluation_start"
    EVALUATION_COMPLETE = "policy.evaluation_complete"
    EVALUATION_ERROR = "policy.evaluation_error"
    RULE_ADDED = "policy.rule_added"
    RULE_UPDATED = "policy.rule_updated"
    RULE_DELETED = "policy.rule_deleted"
    CONFIG_RELOADED = "policy.config_reloaded"
    CONFIG_UPDATED = "policy.config_updated"

    # Judge client
    JUDGE_EVALUATION_START = "judge.evaluation_start"
    JUDGE_EVALUATION_COMPLETE = "judge.evaluation_complete"
    JUDGE_EVALUATION_ERROR = "judge.evaluation_error"
    CIRCUIT_OPEN = "judge.circuit_open"
    CIRCUIT_HALF_OPEN = "judge.circuit_half_open"
    CIRCUIT_CLOSED = "judge.circuit_closed"
    CIRCUIT_RESET = "judge.circuit_reset"


@dataclass(frozen=True)
class LifecycleEvent:
    """One notification."""
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


Subscriber = Callable[[LifecycleEvent], None]


class EventBus:
    """Callback list keyed by optional event-type filters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: List[Tuple[Subscriber, Optional[FrozenSet[EventType]]]] = []

    def subscribe(
        self,
        callback: Subscriber,
        types: Optional[Iterable[EventType]] = None,
    ) -> Callable[[], None]:
        """Register a subscriber.

        Args:
            callback: Called with each matching LifecycleEvent.
            types: Restrict delivery to these event types (default: all).

        Returns:
            A function that removes this subscription.
        """
        entry = (callback, frozenset(types) if types is not None else None)
        with self._lock:
            self._subscribers = self._subscribers + [entry]

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers = [s for s in self._subscribers if s is not entry]

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def emit(self, event_type: EventType, **payload: Any) -> LifecycleEvent:
        event = LifecycleEvent(type=event_type, payload=payload)
        with self._lock:
            subscribers = self._subscribers

        for callback, types in subscribers:
            if types is not None and event_type not in types:
                continue
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Event subscriber {getattr(callback, '__name__', callback)!r} "
                    f"failed on {event_type.value}: {e}"
                )
        return event
