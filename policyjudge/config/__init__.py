"""Configuration management for policyjudge."""

from policyjudge.config.settings import (
    PolicyJudgeSettings,
    JudgeConfig,
    EngineSettings,
    OTelConfig,
    detect_available_model,
)

__all__ = [
    "PolicyJudgeSettings",
    "JudgeConfig",
    "EngineSettings",
    "OTelConfig",
    "detect_available_model",
]
