from __future__ import annotations

from dataclasses import dataclass
import logging

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from tournament_ingest.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"

_BASE_LOG_RECORD_FACTORY = logging.getLogRecordFactory()
_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()


@dataclass(slots=True)
class TelemetryRuntime:
    provider: TracerProvider | None
    app: FastAPI | None = None


def configure_logging() -> None:
    """Stamp every log record with the active trace and span ids, then set up a root handler if none exists."""
    logging.setLogRecordFactory(_record_with_trace_id)
    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def setup_telemetry(settings: Settings, *, service_suffix: str, app: FastAPI | None = None) -> TelemetryRuntime:
    """Trace outbound httpx calls, plus inbound requests when an app is given."""
    if not settings.otel_enabled:
        return TelemetryRuntime(provider=None)

    service_name = f"{settings.otel_service_name}-{service_suffix}"
    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: service_name, DEPLOYMENT_ENVIRONMENT: settings.environment}),
        sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio),
    )
    if settings.otel_exporter_otlp_endpoint:
        exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            headers=parse_headers(settings.otel_exporter_otlp_headers),
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
    else:
        logging.getLogger(__name__).info("no OTLP endpoint; spans stay local service=%s", service_name)
    trace.set_tracer_provider(provider)
    _HTTPX_INSTRUMENTOR.instrument()
    if app is not None:
        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    return TelemetryRuntime(provider=provider, app=app)


def shutdown_telemetry(runtime: TelemetryRuntime) -> None:
    if runtime.provider is None:
        return
    if runtime.app is not None:
        FastAPIInstrumentor.uninstrument_app(runtime.app)
    _HTTPX_INSTRUMENTOR.uninstrument()
    runtime.provider.force_flush()
    runtime.provider.shutdown()


def parse_headers(raw: str | None) -> dict[str, str]:
    """`key=value,key2=value2` as used by OTEL_EXPORTER_OTLP_HEADERS."""
    parsed: dict[str, str] = {}
    for item in (raw or "").split(","):
        key, separator, value = item.partition("=")
        if separator and key.strip():
            parsed[key.strip()] = value.strip()
    return parsed


def _record_with_trace_id(*args: object, **kwargs: object) -> logging.LogRecord:
    record = _BASE_LOG_RECORD_FACTORY(*args, **kwargs)
    context = trace.get_current_span().get_span_context()
    record.trace_id = format(context.trace_id, "032x") if context.is_valid else "-"
    record.span_id = format(context.span_id, "016x") if context.is_valid else "-"
    return record
