"""Distributed tracing setup (OpenTelemetry) for the backend."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from careerlink.settings import settings

try:  # pragma: no cover - imported conditionally
	from opentelemetry import trace
	from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
	from opentelemetry.instrumentation.asyncpg import AsyncPGInstrumentor
	from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
	from opentelemetry.sdk.resources import Resource
	from opentelemetry.sdk.trace import TracerProvider
	from opentelemetry.sdk.trace.export import BatchSpanProcessor
	export_available = True
except ImportError:  # pragma: no cover - tracing extra not installed
	export_available = False
	trace = None  # type: ignore

try:  # pragma: no cover - optional redis instrumentation
	from opentelemetry.instrumentation.redis import RedisInstrumentor  # type: ignore[import-not-found]
except ImportError:  # pragma: no cover
	RedisInstrumentor = None  # type: ignore


LOGGER = logging.getLogger(__name__)
_instrumented = False


def init_tracing(app: FastAPI) -> Optional[object]:
	"""Initialise OpenTelemetry tracing if enabled and dependencies present."""
	global _instrumented
	if not settings.obs_tracing_enabled:
		LOGGER.debug("Tracing disabled via configuration")
		return None
	if not export_available or trace is None:
		LOGGER.warning("Tracing requested but OpenTelemetry dependencies missing")
		return None
	if settings.otel_exporter_otlp_endpoint is None:
		LOGGER.warning("Tracing requested but OTLP endpoint not configured")
		return None
	if _instrumented:
		return trace.get_tracer_provider()

	resource = Resource.create(
		{
			"service.name": settings.service_name,
			"service.version": settings.git_commit,
			"deployment.environment": settings.environment,
		}
	)
	provider = TracerProvider(resource=resource)
	exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True)
	provider.add_span_processor(BatchSpanProcessor(exporter))
	trace.set_tracer_provider(provider)

	FastAPIInstrumentor.instrument_app(app)
	AsyncPGInstrumentor().instrument()
	if RedisInstrumentor is not None:
		RedisInstrumentor().instrument()

	_instrumented = True
	LOGGER.info("OpenTelemetry tracing initialised", extra={"endpoint": settings.otel_exporter_otlp_endpoint})
	return provider


def shutdown_tracing() -> None:
	if not export_available or trace is None:
		return
	provider = trace.get_tracer_provider()
	if hasattr(provider, "shutdown"):
		provider.shutdown()  # type: ignore[call-arg]
