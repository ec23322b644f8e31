"""
Configuration and logging setup for the PodSet operator.
"""

import logging
import os
from typing import Dict


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# ============================================================================
# Logging Configuration
# ============================================================================

def setup_logging(level: str = None):
    """Configure logging to reduce noise"""
    logging.getLogger('kubernetes').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('kopf').setLevel(logging.INFO)

    logging.basicConfig(
        level=(level or os.getenv('LOG_LEVEL', 'INFO')).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# ============================================================================
# Configuration Constants
# ============================================================================

class Config:
    """Configuration constants for the operator"""

    # Environment variables
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    METRICS_PORT = int(os.getenv('METRICS_PORT', '8000'))
    WATCH_NAMESPACE = os.getenv('WATCH_NAMESPACE') or None

    # Work queue and workers
    WORKERS = int(os.getenv('WORKERS', '2'))
    QUEUE_MAXSIZE = int(os.getenv('QUEUE_MAXSIZE', '0'))
    BACKOFF_BASE_DELAY = float(os.getenv('BACKOFF_BASE_DELAY', '0.005'))  # seconds
    BACKOFF_MAX_DELAY = float(os.getenv('BACKOFF_MAX_DELAY', '1000'))  # seconds
    SHUTDOWN_TIMEOUT = float(os.getenv('SHUTDOWN_TIMEOUT', '30'))  # seconds

    # Kubernetes settings
    REQUEST_TIMEOUT = float(os.getenv('REQUEST_TIMEOUT', '30'))  # seconds
    INSTALL_CRD = _env_bool('INSTALL_CRD', False)
    ORPHAN_SWEEP_ENABLED = _env_bool('ORPHAN_SWEEP_ENABLED', False)

    CRD_GROUP = 'app.github.com'
    CRD_VERSION = 'v1alpha1'
    CRD_PLURAL = 'podsets'
    CRD_KIND = 'PodSet'

    # Pod template
    POD_VERSION_LABEL = 'v0.1'
    POD_IMAGE = 'busybox'
    POD_COMMAND = ['sleep', '3600']

    # Health check settings
    LIVENESS_PORT = 8080

    @classmethod
    def api_version(cls) -> str:
        return f"{cls.CRD_GROUP}/{cls.CRD_VERSION}"

# ============================================================================
# Health Status (Global State)
# ============================================================================

health_status: Dict[str, bool] = {
    "kubernetes": True,
    "dispatcher": True,
}

# ============================================================================
# Logger instance
# ============================================================================

setup_logging()
LOG = logging.getLogger(__name__)
