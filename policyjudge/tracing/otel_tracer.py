"""
OpenTelemetry-based tracer for policyjudge lifecycle events.

Subscribes to an EventBus and exports each LifecycleEvent as a span.
Spans can be exported to any OTLP-compatible backend, including:
- Jaeger, Tempo, or other OTLP gRPC backends
- Langfuse (via their OTLP HTTP endpoint)
- The console (for debugging)
"""

import base64
import json
import logging
from typing import Optional, Dict, Any, Callable

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as OTLPSpanExporterHTTP
from opentelemetry.trace import Status, StatusCode

from policyjudge import __version__
from policyjudge.config.settings import OTelConfig
from policyjudge.events import EventBus, EventType, LifecycleEvent

logger = logging.getLogger(__name__)

ATTRIBUTE_PREFIX = "policyjudge"

_ERROR_EVENTS = frozenset({
    EventType.EVALUATION_ERROR,
    EventType.JUDGE_EVALUATION_ERROR,
    EventType.CIRCUIT_OPEN,
})


class PolicyTracer:
    """
    Exports lifecycle events as OpenTelemetry spans.

    Usage:
        tracer = PolicyTracer(settings.otel)
        tracer.attach(orchestrator.events)
        ...
        tracer.shutdown()
    """

    def __init__(self, config: OTelConfig):
        self.config = config
        self._enabled = config.enabled
        self._provider: Optional[TracerProvider] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

        if not self._enabled or config.exporter_type == "none":
            self._enabled = False
            self._tracer = None
            logger.info("PolicyTracer disabled")
            return

        resource = Resource.create({SERVICE_NAME: config.service_name})
        provider = TracerProvider(resource=resource)

        if config.exporter_type == "console":
            exporter = ConsoleSpanExporter()
            logger.info("PolicyTracer using console exporter")
        elif config.exporter_type == "langfuse":
            if not config.langfuse_public_key or not config.langfuse_secret_key:
                logger.warning("PolicyTracer disabled: missing Langfuse credentials")
                self._enabled = False
                self._tracer = None
                return

            langfuse_host = config.langfuse_host.rstrip("/")
            auth_str = f"{config.langfuse_public_key}:{config.langfuse_secret_key}"
            auth_bytes = base64.b64encode(auth_str.encode()).decode()
            exporter = OTLPSpanExporterHTTP(
                endpoint=f"{langfuse_host}/api/public/otel/v1/traces",
                headers={"Authorization": f"Basic {auth_bytes}"},
            )
            logger.info(f"PolicyTracer using Langfuse OTLP exporter (host={langfuse_host})")
        else:  # otlp (gRPC)
            exporter = OTLPSpanExporter(
                endpoint=config.endpoint,
                insecure=config.insecure,
            )
            logger.info(f"PolicyTracer using OTLP gRPC exporter (endpoint={config.endpoint})")

        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)
        self._tracer = trace.get_tracer("policyjudge", __version__)
        self._provider = provider

        logger.info(f"PolicyTracer initialized (exporter={config.exporter_type})")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def attach(self, events: EventBus) -> None:
        """Subscribe to every event on ``events``. Replaces a previous attachment."""
        self.detach()
        if self._enabled:
            self._unsubscribe = events.subscribe(self.log_event)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _safe_json(self, obj: Any) -> str:
        try:
            return json.dumps(obj, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(obj)

    def _attribute_value(self, value: Any) -> Any:
        if isinstance(value, (str, bool, int, float)):
            return value
        return self._safe_json(value)

    def log_event(self, event: LifecycleEvent) -> None:
        """Record one lifecycle event as a span."""
        if not self._enabled or not self._tracer:
            return

        attributes: Dict[str, Any] = {
            f"{ATTRIBUTE_PREFIX}.event_type": event.type.value,
            f"{ATTRIBUTE_PREFIX}.version": __version__,
        }
        for key, value in event.payload.items():
            if value is not None:
                attributes[f"{ATTRIBUTE_PREFIX}.{key}"] = self._attribute_value(value)

        with self._tracer.start_as_current_span(event.type.value, attributes=attributes) as span:
            if event.type in _ERROR_EVENTS:
                description = str(event.payload.get("error", event.type.value))
                span.set_status(Status(StatusCode.ERROR, description))
            else:
                span.set_status(Status(StatusCode.OK))

        logger.debug(f"Traced event '{event.type.value}'")

    def flush(self) -> None:
        if self._provider:
            self._provider.force_flush()

    def shutdown(self) -> None:
        self.detach()
        if self._provider:
            self._provider.shutdown()
        logger.info("PolicyTracer shut down")
