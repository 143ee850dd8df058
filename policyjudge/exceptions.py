"""Exception hierarchy for policyjudge."""

from typing import Optional


class PolicyJudgeError(Exception):
    """Base class for policyjudge errors."""
    pass


class UnknownStrategyError(PolicyJudgeError, ValueError):
    """Raised when a policy names an evaluation strategy that does not exist."""

    def __init__(self, strategy: str, valid: Optional[list] = None):
        self.strategy = strategy
        valid_names = ", ".join(valid or [])
        super().__init__(
            f"Unknown evaluation strategy: {strategy}. Valid options: {valid_names}"
        )


class PolicyStoreError(PolicyJudgeError):
    """Raised by a PolicyStore when a policy cannot be loaded or saved."""
    pass
