"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

from .config import settings

SERVICE_NAME = "vendor-portal-api"
SERVICE_VERSION = "1.0.0"

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

# Seat inventory metrics
SEAT_INVENTORY_UPDATES = Counter(
    'seat_inventory_updates_total',
    'Conditional seat counter updates by direction and outcome',
    ['direction', 'outcome'],
    registry=REGISTRY
)

SEAT_RELEASE_REJECTED = Counter(
    'seat_release_rejected_total',
    'Seat releases rejected by the store for a booking that held seats',
    ['source'],
    registry=REGISTRY
)

CAPACITY_UTILIZATION = Gauge(
    'departure_capacity_utilization',
    'Booked seats as a percentage of total capacity',
    ['departure_id'],
    registry=REGISTRY
)

# Booking metrics
BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Total bookings confirmed after payment',
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    ['initiator'],
    registry=REGISTRY
)

BOOKINGS_FAILED_FULL = Counter(
    'bookings_failed_full_total',
    'Paid bookings that failed because the departure was full',
    registry=REGISTRY
)

# Cancellation metrics
DEPARTURE_CANCELLATIONS = Counter(
    'departure_cancellations_total',
    'Departures cancelled by their vendor',
    registry=REGISTRY
)

CANCELLATION_REFUNDS = Counter(
    'cancellation_refunds_total',
    'Per-booking refund outcomes during departure cancellation',
    ['outcome'],
    registry=REGISTRY
)

DEPARTURES_COMPLETED = Counter(
    'departures_completed_total',
    'Departures marked completed after their date passed',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    if settings.otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument the async engine's underlying sync engine."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_seat_update(delta: int, applied: bool):
        direction = "reserve" if delta > 0 else "release"
        SEAT_INVENTORY_UPDATES.labels(
            direction=direction,
            outcome="applied" if applied else "rejected",
        ).inc()

    @staticmethod
    def record_seat_release_rejected(source: str):
        SEAT_RELEASE_REJECTED.labels(source=source).inc()

    @staticmethod
    def set_capacity_utilization(departure_id: str, booked_seats: int, total_capacity: int):
        """Set capacity utilization percentage for a departure."""
        utilization = (booked_seats / total_capacity) * 100 if total_capacity else 0.0
        CAPACITY_UTILIZATION.labels(departure_id=departure_id).set(utilization)

    @staticmethod
    def record_booking_confirmed():
        BOOKINGS_CONFIRMED.inc()

    @staticmethod
    def record_booking_cancelled(initiator: str):
        BOOKINGS_CANCELLED.labels(initiator=initiator).inc()

    @staticmethod
    def record_booking_failed_full():
        BOOKINGS_FAILED_FULL.inc()

    @staticmethod
    def record_departure_cancelled(successful: int, failed: int):
        """Record a departure cancellation and its refund tally."""
        DEPARTURE_CANCELLATIONS.inc()
        if successful:
            CANCELLATION_REFUNDS.labels(outcome="success").inc(successful)
        if failed:
            CANCELLATION_REFUNDS.labels(outcome="failure").inc(failed)

    @staticmethod
    def record_departures_completed(count: int):
        DEPARTURES_COMPLETED.inc(count)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, logger: Any):
        self.logger = logger

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def exception(self, message: str, **kwargs):
        self.logger.exception(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def with_context(self, **kwargs) -> "StructuredLogger":
        """Return a logger with ``kwargs`` bound to every event."""
        return StructuredLogger(self.logger.bind(**kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(structlog.get_logger(name))
