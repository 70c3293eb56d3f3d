"""Prometheus metrics for the homeserver index."""

import logging

from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Private registry so repeated app construction in tests never collides
mxindex_registry = CollectorRegistry()

http_requests_total = Counter(
    'mxindex_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=mxindex_registry
)

cache_operations_total = Counter(
    'mxindex_cache_operations_total',
    'Total number of cache operations',
    ['operation', 'result'],
    registry=mxindex_registry
)

servers_indexed = Gauge(
    'mxindex_servers_indexed',
    'Number of indexed servers',
    registry=mxindex_registry
)

discovery_errors_total = Counter(
    'mxindex_discovery_errors_total',
    'Total number of per-host discovery failures',
    registry=mxindex_registry
)

discovery_servers_added_total = Counter(
    'mxindex_discovery_servers_added_total',
    'Servers added to the index by federation discovery',
    registry=mxindex_registry
)


def record_cache_operation(operation: str, result: str) -> None:
    cache_operations_total.labels(operation=operation, result=result).inc()


def record_http_request(method: str, endpoint: str, status: int) -> None:
    http_requests_total.labels(method=method, endpoint=endpoint, status=str(status)).inc()


def render_metrics() -> bytes:
    """Metrics in the Prometheus text exposition format"""
    return generate_latest(mxindex_registry)


__all__ = [
    'CONTENT_TYPE_LATEST',
    'cache_operations_total',
    'discovery_errors_total',
    'discovery_servers_added_total',
    'http_requests_total',
    'mxindex_registry',
    'record_cache_operation',
    'record_http_request',
    'render_metrics',
    'servers_indexed',
]
