"""Observability setup for OpenTelemetry, Prometheus metrics, and structured logging."""

import logging

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

from .config import settings

SERVICE_NAME = "courtbook-api"

# Prometheus metrics
REGISTRY = CollectorRegistry()

HOLDS_PLACED = Counter(
    "courtbook_holds_placed_total",
    "Holds created or refreshed",
    ["court_id"],
    registry=REGISTRY
)

HOLDS_REJECTED = Counter(
    "courtbook_holds_rejected_total",
    "Hold requests rejected",
    ["reason"],
    registry=REGISTRY
)

HOLDS_SWEPT = Counter(
    "courtbook_holds_swept_total",
    "Expired holds physically deleted by the sweeper",
    registry=REGISTRY
)

BOOKINGS_SETTLED = Counter(
    "courtbook_bookings_settled_total",
    "Bookings written as PAID",
    ["funding", "payer_kind"],
    registry=REGISTRY
)

SETTLEMENT_CONFLICTS = Counter(
    "courtbook_settlement_conflicts_total",
    "Finalize attempts rejected because a slot was already booked",
    ["payment_captured"],
    registry=REGISTRY
)

SLOTS_CANCELLED = Counter(
    "courtbook_slots_cancelled_total",
    "Booking slots cancelled",
    ["refund_status"],
    registry=REGISTRY
)

FOLLOWUPS_RECORDED = Counter(
    "courtbook_followups_recorded_total",
    "Best-effort settlement steps that did not complete inline",
    ["kind"],
    registry=REGISTRY
)

FOLLOWUPS_PENDING = Gauge(
    "courtbook_followups_pending",
    "Follow-ups waiting for a retry",
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict["trace_id"] = format(ctx.trace_id, "032x")
            event_dict["span_id"] = format(ctx.span_id, "016x")
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_tracing(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry tracing, exporting over OTLP when an endpoint is configured."""
    resource = Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })

    provider = TracerProvider(resource=resource)
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)

    return trace.get_tracer(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument the application's SQLAlchemy engine with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for reservation metrics."""

    @staticmethod
    def record_hold_placed(court_id: int):
        HOLDS_PLACED.labels(court_id=str(court_id)).inc()

    @staticmethod
    def record_hold_rejected(reason: str):
        HOLDS_REJECTED.labels(reason=reason).inc()

    @staticmethod
    def record_holds_swept(count: int):
        HOLDS_SWEPT.inc(count)

    @staticmethod
    def record_booking_settled(funding: str, payer_kind: str):
        BOOKINGS_SETTLED.labels(funding=funding, payer_kind=payer_kind).inc()

    @staticmethod
    def record_settlement_conflict(payment_captured: bool):
        SETTLEMENT_CONFLICTS.labels(payment_captured=str(payment_captured).lower()).inc()

    @staticmethod
    def record_slot_cancelled(refund_status: str):
        SLOTS_CANCELLED.labels(refund_status=refund_status).inc()

    @staticmethod
    def record_followup(kind: str):
        FOLLOWUPS_RECORDED.labels(kind=kind).inc()

    @staticmethod
    def set_pending_followups(count: int):
        FOLLOWUPS_PENDING.set(count)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
