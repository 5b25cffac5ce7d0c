"""
Prometheus metrics configuration
"""
import os

from prometheus_client import (CONTENT_TYPE_LATEST, Counter, Gauge, Histogram,
                               Info, generate_latest)
from prometheus_client.multiprocess import MultiProcessCollector
from prometheus_client.registry import REGISTRY

# Check if we're in multiprocess mode
if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    MultiProcessCollector(REGISTRY)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_errors_total = Counter(
    'http_errors_total',
    'Total number of HTTP errors',
    ['method', 'endpoint', 'status_code', 'error_type']
)

# ============================================================================
# Collection Metrics
# ============================================================================

collection_runs_total = Counter(
    'collection_runs_total',
    'Total number of collection runs',
    ['status']  # status: 'success', 'producer_error', 'storage_error', 'cancelled'
)

collection_duration_seconds = Histogram(
    'collection_duration_seconds',
    'Duration of one collection run in seconds',
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

producer_request_duration_seconds = Histogram(
    'producer_request_duration_seconds',
    'Producer request duration in seconds',
    ['outcome'],  # outcome: 'ok', 'status', 'transport', 'decode'
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

datapoints_admitted_total = Counter(
    'datapoints_admitted_total',
    'Datapoints written per destination',
    ['destination', 'reason']  # destination: 'accepted', 'rejected'
)

periodic_trigger_running = Gauge(
    'periodic_trigger_running',
    'Whether a periodic trigger is running',
    ['trigger']
)

# ============================================================================
# Query Metrics
# ============================================================================

query_rows_streamed_total = Counter(
    'query_rows_streamed_total',
    'Rows written to query responses'
)

query_rows_skipped_total = Counter(
    'query_rows_skipped_total',
    'Rows skipped because they could not be decoded'
)

# ============================================================================
# Database Metrics
# ============================================================================

db_queries_total = Counter(
    'db_queries_total',
    'Total number of database queries',
    ['operation', 'table']
)

db_query_duration_seconds = Histogram(
    'db_query_duration_seconds',
    'Database query duration in seconds',
    ['operation', 'table'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)
)

db_connection_pool_size = Gauge(
    'db_connection_pool_size',
    'Database connection pool size',
    ['state']  # state: 'active', 'idle'
)

app_info = Info(
    'app_info',
    'Application information'
)


def set_app_info(app_name: str, app_env: str, version: str):
    """Publish application name, environment and version"""
    app_info.info({
        'app_name': app_name,
        'app_env': app_env,
        'version': version
    })

# ============================================================================
# Helper Functions
# ============================================================================

def get_metrics():
    """
    Get Prometheus metrics in text format

    Returns:
        bytes: Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type():
    """
    Get content type for Prometheus metrics

    Returns:
        str: Content type for metrics endpoint
    """
    return CONTENT_TYPE_LATEST
