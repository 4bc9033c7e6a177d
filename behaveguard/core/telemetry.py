"""Tracing for delivery attempts.

``configure_tracing`` installs an OTLP gRPC exporting provider when the
``telemetry`` section enables it. Until then ``get_tracer`` hands out the
OpenTelemetry API's default tracers, which record nothing.
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import NoOpTracerProvider

from behaveguard import __version__
from behaveguard.config import TelemetryConfig

logger = logging.getLogger(__name__)

_provider: TracerProvider | None = None


def configure_tracing(
    config: TelemetryConfig, *, service_name: str = "behaveguard"
) -> TracerProvider | NoOpTracerProvider:
    """Install the exporting provider, or return a no-op one when disabled."""
    global _provider  # noqa: PLW0603

    if not config.enabled or not config.endpoint:
        logger.debug("Tracing disabled")
        return NoOpTracerProvider()

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
            "deployment.environment": config.env,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=config.endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    _provider = provider
    logger.info("Exporting delivery spans to %s (env=%s)", config.endpoint, config.env)
    return provider


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def shutdown_tracing() -> None:
    """Flush pending spans. Safe to call when tracing was never configured."""
    global _provider  # noqa: PLW0603

    if _provider is not None:
        _provider.shutdown()
        _provider = None


__all__ = ["configure_tracing", "get_tracer", "shutdown_tracing"]
