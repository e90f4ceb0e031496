# telemetry.py — OpenTelemetry instrumentation for DevTrack
"""
Configures distributed tracing for the API.
Exports to an OTLP collector when OTEL_EXPORTER_OTLP_ENDPOINT is set,
otherwise runs in no-op mode for development/testing.
"""
import os
import logging
from contextlib import nullcontext

logger = logging.getLogger("devtrack.telemetry")

# Service identity
SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "devtrack-api")
SERVICE_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")


def setup_telemetry(app=None):
    """Initialise OpenTelemetry tracing and instrument FastAPI + SQLAlchemy.

    If the OTel SDK is not installed or no exporter endpoint is
    configured, this is a no-op.
    """
    if not OTLP_ENDPOINT:
        logger.info("OpenTelemetry disabled (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME as RES_SVC_NAME
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        resource = Resource.create({
            RES_SVC_NAME: SERVICE_NAME,
            "service.version": SERVICE_VERSION,
            "deployment.environment": ENVIRONMENT,
        })

        provider = TracerProvider(resource=resource)
        exporter = OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)

        # Instrument FastAPI
        if app is not None:
            try:
                from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
                FastAPIInstrumentor.instrument_app(
                    app,
                    excluded_urls="health",
                    tracer_provider=provider,
                )
                logger.info("FastAPI instrumented with OpenTelemetry")
            except ImportError:
                logger.warning("opentelemetry-instrumentation-fastapi not installed")

        # Instrument SQLAlchemy
        try:
            from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
            SQLAlchemyInstrumentor().instrument(tracer_provider=provider)
            logger.info("SQLAlchemy instrumented with OpenTelemetry")
        except ImportError:
            logger.warning("opentelemetry-instrumentation-sqlalchemy not installed")

        logger.info(f"OpenTelemetry initialised → {OTLP_ENDPOINT}")
        return provider

    except ImportError:
        logger.info("OpenTelemetry SDK not installed — tracing disabled")
        return None
    except Exception as e:
        logger.error(f"OpenTelemetry setup failed: {e}")
        return None


def get_tracer(name: str = "devtrack"):
    """Get a tracer instance. Returns None if OTel is not installed."""
    try:
        from opentelemetry import trace
        return trace.get_tracer(name, SERVICE_VERSION)
    except ImportError:
        return None


def span(name: str, tracer_name: str = "devtrack", **attributes):
    """Context manager wrapping a block in a span (a no-op without OTel)"""
    tracer = get_tracer(tracer_name)
    if tracer is None:
        return nullcontext()
    return tracer.start_as_current_span(name, attributes=attributes or None)
