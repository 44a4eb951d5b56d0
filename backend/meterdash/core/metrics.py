"""
Prometheus metrics collection.
"""
from prometheus_client import Counter, Histogram, Gauge, Info
from prometheus_client import CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST

registry = CollectorRegistry()

app_info = Info('app', 'Application information', registry=registry)
app_info.info({
    'name': 'Meter Dashboard',
    'version': '1.0.0'
})

# HTTP Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=registry
)

http_requests_in_progress = Gauge(
    'http_requests_in_progress',
    'Number of HTTP requests in progress',
    ['method', 'endpoint'],
    registry=registry
)

# Ingestion Metrics
ingestion_days_total = Counter(
    'ingestion_days_total',
    'Days processed by the ingestion loop',
    ['outcome'],
    registry=registry
)

meter_readings_inserted_total = Counter(
    'meter_readings_inserted_total',
    'Meter readings newly persisted by ingestion',
    ['reading_type'],
    registry=registry
)

# Query Metrics
readings_query_duration_seconds = Histogram(
    'readings_query_duration_seconds',
    'Readings query duration including aggregation',
    ['aggregation'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=registry
)

readings_query_failures_total = Counter(
    'readings_query_failures_total',
    'Readings queries that degraded to an empty result',
    registry=registry
)


def get_metrics():
    """
    Get current metrics in Prometheus format.

    Returns:
        Prometheus metrics in text format
    """
    return generate_latest(registry)


def get_metrics_content_type():
    return CONTENT_TYPE_LATEST
