"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry
import structlog

from .. import __version__
from .config import settings

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
TOURS_CREATED = Counter(
    'tours_created_total',
    'Total tours created',
    ['difficulty'],
    registry=REGISTRY
)

TOURS_UPDATED = Counter(
    'tours_updated_total',
    'Total tours updated',
    registry=REGISTRY
)

TOURS_DELETED = Counter(
    'tours_deleted_total',
    'Total tours deleted',
    registry=REGISTRY
)

REPORTS_GENERATED = Counter(
    'tour_reports_generated_total',
    'Total aggregation reports generated',
    ['report'],
    registry=REGISTRY
)


def _add_trace_context(logger, method_name, event_dict):
    """Add the active span's IDs to log events."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict['trace_id'] = format(ctx.trace_id, '032x')
        event_dict['span_id'] = format(ctx.span_id, '016x')
    return event_dict


def setup_structured_logging():
    """
    Route structlog and standard library logging through one structlog formatter.

    Modules log with ``logging.getLogger(__name__)`` and pass context in
    ``extra``; those fields, the bound request ID and the trace IDs all end up
    as keys of the rendered event. Development renders to the console,
    everything else as JSON lines.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        _add_trace_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if settings.debug:
        final_processors = [structlog.dev.ConsoleRenderer()]
    else:
        final_processors = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors + [structlog.stdlib.ExtraAdder()],
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta] + final_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)

    # uvicorn installs its own handlers; let its records reach the root formatter
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True


def _resource(app_name: str) -> Resource:
    return Resource.create({
        "service.name": app_name,
        "service.version": __version__,
        "deployment.environment": settings.environment,
    })


def setup_tracing(app_name: str = "tours-api"):
    """Install a tracer provider; spans are exported only when an OTLP endpoint is set."""
    provider = TracerProvider(resource=_resource(app_name))
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics(app_name: str = "tours-api"):
    """Export OpenTelemetry metrics over OTLP when configured; Prometheus is always served."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(app_name), metric_readers=[reader]))
    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry, leaving scrape and probe endpoints out."""
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,ready,metrics")


def instrument_sqlalchemy(engine):
    """Instrument the async engine's sync core with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for request and business metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration: float):
        """Record a completed HTTP request."""
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)

    @staticmethod
    def record_tour_created(difficulty: str):
        """Record a tour creation."""
        TOURS_CREATED.labels(difficulty=difficulty).inc()

    @staticmethod
    def record_tour_updated():
        """Record a tour update."""
        TOURS_UPDATED.inc()

    @staticmethod
    def record_tour_deleted():
        """Record a tour deletion."""
        TOURS_DELETED.inc()

    @staticmethod
    def record_report(report: str):
        """Record an aggregation report run."""
        REPORTS_GENERATED.labels(report=report).inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()

