"""
ThreadSpire observability.

Prometheus counters for publishing, views, rate limiting and live
subscriptions (served at /metrics), plus optional OTLP tracing that
create_app switches on when TRACING_ENABLED is set.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter, Histogram

from threadspire.config import Settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
THREADS_CREATED_TOTAL = Counter(
    "threads_created_total",
    "Threads created, by origin",
    ["origin"],  # 'new' | 'fork' | 'draft'
)

THREAD_VIEWS_TOTAL = Counter(
    "thread_views_total",
    "Thread views recorded",
    ["viewer"],  # 'authenticated' | 'anonymous'
)

THREAD_LOAD_LATENCY = Histogram(
    "thread_load_latency_seconds",
    "Latency of loading a single thread with segments, tags and reactions",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

RATE_LIMITED_TOTAL = Counter(
    "rate_limited_total",
    "Requests rejected by the rate limiter",
    ["action"],
)

REALTIME_SUBSCRIBERS = Counter(
    "realtime_subscriptions_total",
    "WebSocket subscriptions opened",
    ["channel"],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing(settings: Settings) -> None:
    """Install a TracerProvider exporting spans to the configured OTLP collector."""
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)

    # DB and cache calls show up as child spans of the request
    RedisInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    FastAPIInstrumentor.instrument_app(app)
