"""
Evaluation history.

Every recorded evaluation keeps the content, the policy snapshot it was
judged against, and the verdict, so it can be inspected or replayed.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Protocol, Optional, List, Dict, Any, TYPE_CHECKING, runtime_checkable

from policyjudge.policy.models import Policy

if TYPE_CHECKING:
    from policyjudge.engine.models import PolicyVerdict

logger = logging.getLogger(__name__)


@runtime_checkable
class HistorySink(Protocol):
    """Receives completed evaluations and returns an evaluation id."""

    def record(self, content: str, policy: Policy, verdict: "PolicyVerdict") -> str:
        ...


@dataclass(frozen=True)
class HistoryRecord:
    evaluation_id: str
    content: str
    policy: Policy
    verdict: "PolicyVerdict"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluation_id": self.evaluation_id,
            "content": self.content,
            "policy_snapshot": self.policy.to_dict(),
            "result": self.verdict.to_dict(),
        }


class InMemoryHistory:
    """Bounded in-process HistorySink; the oldest records are evicted first."""

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._lock = threading.Lock()
        self._records: "OrderedDict[str, HistoryRecord]" = OrderedDict()

    def record(self, content: str, policy: Policy, verdict: "PolicyVerdict") -> str:
        evaluation_id = f"eval_{uuid.uuid4().hex}"
        entry = HistoryRecord(
            evaluation_id=evaluation_id,
            content=content,
            policy=policy,
            verdict=verdict.with_evaluation_id(evaluation_id),
        )
        with self._lock:
            self._records[evaluation_id] = entry
            while len(self._records) > self.max_size:
                evicted, _ = self._records.popitem(last=False)
                logger.debug(f"Evicted history record {evicted}")
        return evaluation_id

    def get(self, evaluation_id: str) -> Optional[HistoryRecord]:
        with self._lock:
            return self._records.get(evaluation_id)

    def recent(self, limit: int = 20) -> List[HistoryRecord]:
        """Newest first."""
        with self._lock:
            records = list(self._records.values())
        return list(reversed(records))[:limit]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
