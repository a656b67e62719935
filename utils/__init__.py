"""
Shared helpers for the Lead Lifecycle Engine.
"""

from .clock import utcnow
from .exceptions import (
    LeadEngineError,
    ValidationError,
    ConfigurationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    DependencyError,
    StorePermissionError,
    StoreError,
)

__all__ = [
    "utcnow",
    "LeadEngineError",
    "ValidationError",
    "ConfigurationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "DependencyError",
    "StorePermissionError",
    "StoreError",
]
