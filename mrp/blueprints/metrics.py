"""
Prometheus metrics for the fulfillment service.

/metrics exposes request counters and latency plus domain counters for kit
outcomes and settlements. The endpoint is unauthenticated; keep it on the
monitoring network.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import logging
import time
import os

logger = logging.getLogger(__name__)

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share counters through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# Requests to these endpoints are not measured
_UNTRACKED_ENDPOINTS = frozenset({'metrics.metrics', 'main.health'})

request_count = Counter(
    'mrp_http_requests_total',
    'HTTP requests by endpoint and status code',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

request_latency = Histogram(
    'mrp_http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

requests_in_flight = Gauge(
    'mrp_http_requests_in_flight',
    'HTTP requests being processed',
    registry=_metric_registry
)

kit_requests_total = Counter(
    'mrp_kit_requests_total',
    'Kit requests by overall outcome',
    ['status'],
    registry=_metric_registry
)

kit_lines_short_total = Counter(
    'mrp_kit_lines_short_total',
    'BOM lines reported partial or shortage by kitting',
    registry=_metric_registry
)

settlements_total = Counter(
    'mrp_settlements_total',
    'Work order settlements by kind',
    ['kind'],
    registry=_metric_registry
)


def record_kit(report):
    """Count one kit report. Never raises."""
    try:
        kit_requests_total.labels(status=report['status']).inc()
        short = sum(1 for line in report['items'] if line['status'] != 'kitted')
        if short:
            kit_lines_short_total.inc(short)
    except Exception as e:
        logger.warning(f"Failed to record kit metrics: {e}")


def record_settlement(kind):
    """Count one completion or cancellation settlement. Never raises."""
    try:
        settlements_total.labels(kind=kind).inc()
    except Exception as e:
        logger.warning(f"Failed to record settlement metrics: {e}")


def setup_metrics_instrumentation(app):
    """Register request hooks that feed the HTTP metrics."""

    @app.before_request
    def start_request_timer():
        if request.endpoint in _UNTRACKED_ENDPOINTS:
            return
        g._metrics_started = time.time()
        requests_in_flight.inc()

    @app.after_request
    def observe_request(response):
        started = g.pop('_metrics_started', None)
        if started is None:
            return response
        try:
            endpoint = request.endpoint or 'unknown'
            request_latency.labels(method=request.method, endpoint=endpoint).observe(time.time() - started)
            request_count.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except Exception as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        finally:
            requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus text exposition."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
