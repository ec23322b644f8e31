"""
Prometheus metrics definitions for the PodSet operator.
"""

from prometheus_client import Counter, Gauge, Histogram, start_http_server
from .config import health_status

# ============================================================================
# Prometheus Metrics
# ============================================================================

# Reconcile outcomes: success, requeue, error
RECONCILE_TOTAL = Counter(
    'podset_reconcile_total',
    'Total reconcile invocations by outcome',
    ['result']
)

RECONCILE_DURATION = Histogram(
    'podset_reconcile_duration_seconds',
    'Time spent in a single reconcile',
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)
)

# Pod writes issued by the reconciler
PODS_CREATED = Counter(
    'podset_pods_created_total',
    'Pods created while scaling up',
    ['namespace']
)

PODS_DELETED = Counter(
    'podset_pods_deleted_total',
    'Pods deleted while scaling down or sweeping orphans',
    ['namespace', 'reason']
)

STATUS_UPDATES = Counter(
    'podset_status_updates_total',
    'PodSet status writes',
    ['namespace']
)

# Work queue metrics
WORKQUEUE_DEPTH = Gauge(
    'podset_workqueue_depth',
    'Keys waiting in the work queue'
)

WORKQUEUE_RETRIES = Counter(
    'podset_workqueue_retries_total',
    'Rate-limited re-adds to the work queue'
)

# Operator health metrics
OPERATOR_HEALTH = Gauge(
    'podset_operator_health',
    'Operator health',
    ['component']
)

# ============================================================================
# Metrics Server Management
# ============================================================================

def start_metrics_server(port: int = 8000):
    """Start the Prometheus metrics server"""
    start_http_server(port)
    OPERATOR_HEALTH.labels(component='startup').set(1)

def update_health_metrics():
    """Update health metrics based on current health status"""
    for component, status in health_status.items():
        OPERATOR_HEALTH.labels(component=component).set(1 if status else 0)
