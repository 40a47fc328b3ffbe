"""
OpenTelemetry tracing for the YachtOps API.

Request spans come from the FastAPI instrumentation; the integration
aggregator adds one child span per write-back step.
"""
import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from backend.app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def setup_tracing(app=None, settings: Optional[Settings] = None) -> TracerProvider:
    """Install a tracer provider tagged with the service name and version."""
    settings = settings or get_settings()
    resource = Resource.create({
        SERVICE_NAME: "yachtops-backend",
        SERVICE_VERSION: settings.app_version,
    })
    provider = TracerProvider(resource=resource)

    if settings.tracing_exporter == "console":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    elif settings.tracing_exporter != "none":
        logger.warning(f"Unknown tracing exporter {settings.tracing_exporter!r}; spans will not be exported")

    trace.set_tracer_provider(provider)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health,ready")
        logger.info(f"Tracing enabled (exporter={settings.tracing_exporter})")
    return provider


def get_tracer(name: str) -> trace.Tracer:
    # Resolves through the global proxy, so module-level tracers pick up a provider installed later
    return trace.get_tracer(name)
