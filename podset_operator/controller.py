"""
Kopf event handlers for the PodSet operator.

Handlers only translate watch events into reconcile keys; reconciling
happens on the dispatcher's worker threads.
"""

import kopf
import logging

from .config import Config
from .metrics import start_metrics_server
from .operator import PodSetOperator

LOG = logging.getLogger(__name__)

# ============================================================================
# Global operator instance
# ============================================================================

operator = PodSetOperator()

# ============================================================================
# Kopf Event Handlers
# ============================================================================

@kopf.on.startup()
def startup(settings: kopf.OperatorSettings, **_):
    """Operator startup configuration"""
    try:
        operator.initialize()
        start_metrics_server(Config.METRICS_PORT)

        LOG.info("PodSet operator started successfully")
        LOG.info(f"Log level: {Config.LOG_LEVEL}")
        LOG.info(f"Workers: {Config.WORKERS}")
        LOG.info(f"Metrics port: {Config.METRICS_PORT}")
    except Exception as e:
        LOG.error(f"Startup failed: {e}")
        raise

@kopf.on.event(Config.CRD_GROUP, Config.CRD_VERSION, Config.CRD_PLURAL)
def on_podset_event(body, name, namespace, **kwargs):
    """Any change to a PodSet reconciles that PodSet"""
    LOG.debug(f"PodSet event {kwargs.get('type')} for '{namespace}/{name}'")
    operator.handle_podset_event(kwargs.get('type'), body)

@kopf.on.event('', 'v1', 'pods', labels={'version': Config.POD_VERSION_LABEL})
def on_pod_event(body, **kwargs):
    """Changes to owned pods reconcile the owning PodSet"""
    operator.handle_pod_event(body)

# ============================================================================
# Cleanup
# ============================================================================

@kopf.on.cleanup()
def cleanup(**kwargs):
    """Cleanup on operator shutdown"""
    LOG.info("Cleaning up operator resources...")
    operator.cleanup()
