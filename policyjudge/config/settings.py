"""
policyjudge configuration management using Pydantic Settings.

Configuration can be provided via:
1. policyjudge.yaml config file (primary)
2. PJUDGE_* env vars (nested with double underscore, e.g. PJUDGE_JUDGE__TIMEOUT_MS)
3. .env file
4. Direct instantiation

Priority (highest wins): init kwargs > policyjudge.yaml > env vars > .env > defaults

Example policyjudge.yaml:
    model: gpt-4o-mini          # optional, auto-detected from API keys
    judge:
      timeout_ms: 20000
      max_retries: 3
    settings:
      parallel_evaluation: true
    policy: ./policies/content_safety.yaml   # or an inline mapping
    tracing:
      type: console
"""

import logging
import os
from pathlib import Path
from typing import Optional, Literal, Dict, Any, Tuple, Type, Union

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
    PydanticBaseSettingsSource,
)

from policyjudge.policy.models import Policy

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = ("policyjudge.yaml", "policyjudge.yml")
CONFIG_ENV_VAR = "PJUDGE_CONFIG"


def detect_available_model() -> Tuple[str, str, str]:
    """Check env vars and return the best available judge model.

    Returns:
        (model_id, provider_name, env_var_name) tuple.
    """
    if os.environ.get("OPENAI_API_KEY"):
        return ("gpt-4o-mini", "OpenAI", "OPENAI_API_KEY")
    if os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY"):
        env_var = "GOOGLE_API_KEY" if os.environ.get("GOOGLE_API_KEY") else "GEMINI_API_KEY"
        return ("gemini/gemini-2.5-flash", "Google Gemini", env_var)
    if os.environ.get("ANTHROPIC_API_KEY"):
        return ("anthropic/claude-sonnet-4-5", "Anthropic", "ANTHROPIC_API_KEY")
    # No key found; the live provider will fail with a clear auth error
    return ("gpt-4o-mini", "OpenAI", "OPENAI_API_KEY")


def get_default_model() -> str:
    return detect_available_model()[0]


class OTelConfig(BaseModel):
    """OpenTelemetry tracing configuration.

    Supports multiple exporters:
    - otlp: Standard OTLP gRPC endpoint (Jaeger, Tempo, etc.)
    - langfuse: Langfuse's OTLP HTTP endpoint (requires public_key/secret_key)
    - console: Print spans to stdout (for debugging)
    - none: Disable tracing
    """

    enabled: bool = False
    endpoint: str = "http://localhost:4317"
    service_name: str = "policyjudge"
    exporter_type: Literal["otlp", "langfuse", "console", "none"] = "none"
    insecure: bool = True

    langfuse_public_key: Optional[str] = None
    langfuse_secret_key: Optional[str] = None
    langfuse_host: str = "https://cloud.langfuse.com"


class JudgeConfig(BaseModel):
    """Judge client parameters.

    Field names match JudgeClient's constructor so the model can be
    splatted into it (see JudgeClient.from_config).
    """

    model: str = Field(default_factory=get_default_model)
    temperature: float = 0.1
    max_tokens: int = 500
    timeout_ms: float = 30000
    max_retries: int = Field(default=3, ge=1)
    retry_delay_ms: float = 1000
    max_retry_delay_ms: float = 10000
    backoff_multiplier: float = 2.0
    jitter_factor: float = Field(default=0.1, ge=0.0)
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_reset_ms: float = 30000
    half_open_success_threshold: int = Field(default=2, ge=1)
    api_key: Optional[str] = None


class EngineSettings(BaseModel):
    """Orchestrator behaviour."""

    parallel_evaluation: bool = True
    debug_log: bool = False
    # Caller deadline for a whole policy evaluation; None disables it
    evaluation_timeout_seconds: Optional[float] = None
    history_size: int = Field(default=1000, ge=1)


class YamlConfigSource(PydanticBaseSettingsSource):
    """Settings source that reads a policyjudge.yaml config file.

    Discovers config at:
    1. Explicit path passed via _config_path init kwarg
    2. $PJUDGE_CONFIG env var
    3. ./policyjudge.yaml
    4. ./policyjudge.yml

    Maps the shorthand keys (``model``, ``tracing``) onto the nested
    PolicyJudgeSettings structure.
    """

    def __init__(
        self, settings_cls: Type[BaseSettings], config_path: Optional[str] = None
    ):
        super().__init__(settings_cls)
        self._config_path = config_path
        self._yaml_data: Optional[Dict[str, Any]] = None
        self.path: Optional[Path] = None
        self._load()

    def _discover_config_file(self) -> Optional[Path]:
        if self._config_path:
            p = Path(self._config_path)
            return p if p.is_file() else None

        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            p = Path(env_path)
            return p if p.is_file() else None

        for name in CONFIG_FILE_NAMES:
            p = Path(name)
            if p.is_file():
                return p

        return None

    def _load(self) -> None:
        path = self._discover_config_file()
        if path is None:
            self._yaml_data = {}
            return

        try:
            import yaml

            with open(path) as f:
                data = yaml.safe_load(f)
            self._yaml_data = data if isinstance(data, dict) else {}
            self.path = path
            logger.debug(f"Loaded config from {path}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            self._yaml_data = {}

    def _map_to_settings(self) -> Dict[str, Any]:
        if not self._yaml_data:
            return {}

        data = self._yaml_data
        result: Dict[str, Any] = {}

        for key in ("debug", "log_level", "policy"):
            if key in data:
                result[key] = data[key]

        judge_cfg = data.get("judge")
        if isinstance(judge_cfg, dict):
            result["judge"] = dict(judge_cfg)

        # model -> judge.model
        if "model" in data:
            result.setdefault("judge", {})["model"] = data["model"]

        settings_cfg = data.get("settings")
        if isinstance(settings_cfg, dict):
            result["settings"] = dict(settings_cfg)

        # tracing.* -> otel.*
        tracing_cfg = data.get("tracing", {})
        if isinstance(tracing_cfg, dict) and tracing_cfg:
            otel = result.setdefault("otel", {})
            if "type" in tracing_cfg:
                tracing_type = tracing_cfg["type"]
                otel["exporter_type"] = tracing_type
                otel["enabled"] = tracing_type != "none"
            for key in (
                "endpoint",
                "service_name",
                "insecure",
                "langfuse_public_key",
                "langfuse_secret_key",
                "langfuse_host",
            ):
                if key in tracing_cfg:
                    otel[key] = tracing_cfg[key]

        return result

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        mapped = self._map_to_settings()
        value = mapped.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> Dict[str, Any]:
        return self._map_to_settings()


class PolicyJudgeSettings(BaseSettings):
    """
    Main policyjudge configuration.

    All settings can be overridden via environment variables with PJUDGE_ prefix.
    Nested settings use double underscore: PJUDGE_SETTINGS__PARALLEL_EVALUATION

    Pass _config_path to override the config file location.
    """

    model_config = SettingsConfigDict(
        env_prefix="PJUDGE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path: Optional[str] = None

    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    judge: JudgeConfig = Field(default_factory=JudgeConfig)
    settings: EngineSettings = Field(default_factory=EngineSettings)
    otel: OTelConfig = Field(default_factory=OTelConfig)

    # Inline policy mapping, or a path to a YAML/JSON policy file
    policy: Optional[Union[str, Dict[str, Any]]] = None

    def __init__(self, _config_path: Optional[str] = None, **kwargs: Any):
        self.__class__._config_path = _config_path
        super().__init__(**kwargs)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Insert YAML config source before env vars.

        Priority (highest first): init > yaml > env > dotenv > file_secret
        """
        yaml_source = YamlConfigSource(settings_cls, config_path=cls._config_path)
        return (
            init_settings,
            yaml_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    def load_policy(self) -> Policy:
        """Resolve the configured policy.

        A string is read as a policy file path; a mapping is parsed
        inline. With nothing configured an empty policy named
        ``default`` is returned.

        Raises:
            FileNotFoundError: If the policy path does not exist
            pydantic.ValidationError: If the policy is malformed
        """
        from policyjudge.policy.parser import PolicyParser

        if self.policy is None:
            return Policy(name="default")
        if isinstance(self.policy, str):
            return PolicyParser.parse_file(self.policy)
        return PolicyParser.parse_dict(self.policy)
