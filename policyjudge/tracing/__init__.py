"""OpenTelemetry export of policyjudge lifecycle events."""

from policyjudge.tracing.otel_tracer import PolicyTracer

__all__ = ["PolicyTracer"]
