"""
API middleware: shared-secret authentication and Prometheus metrics.
"""

from .auth import require_dispatch_secret, require_operator_key, require_webhook_secret
from .metrics import MetricsMiddleware, metrics_endpoint

__all__ = [
    "require_webhook_secret",
    "require_dispatch_secret",
    "require_operator_key",
    "MetricsMiddleware",
    "metrics_endpoint",
]
