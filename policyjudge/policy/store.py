"""
Policy persistence.

PolicyStore is the collaborator the orchestrator hands successful rule
and config mutations to. YamlPolicyStore keeps the policy in a single
YAML or JSON file.
"""

import logging
import threading
from pathlib import Path
from typing import Protocol, Union, runtime_checkable

from pydantic import ValidationError

from policyjudge.exceptions import PolicyStoreError
from policyjudge.policy.models import Policy
from policyjudge.policy.parser import PolicyParser

logger = logging.getLogger(__name__)


@runtime_checkable
class PolicyStore(Protocol):
    """Load and persist the configured policy."""

    def load(self) -> Policy:
        ...

    def save(self, policy: Policy) -> None:
        ...


class YamlPolicyStore:
    """PolicyStore backed by one file; the suffix picks YAML or JSON."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> Policy:
        try:
            return PolicyParser.parse_file(self.path)
        except (OSError, ValueError, ValidationError) as e:
            raise PolicyStoreError(f"Failed to load policy from {self.path}: {e}") from e

    def save(self, policy: Policy) -> None:
        with self._lock:
            try:
                PolicyParser.dump(policy, self.path)
            except (OSError, ValueError) as e:
                raise PolicyStoreError(f"Failed to save policy to {self.path}: {e}") from e
        logger.info(f"Saved policy '{policy.name}' ({len(policy.rules)} rules) to {self.path}")
