"""
Custom exceptions for the Lead Lifecycle Engine.

Every error carries a stable ``reason`` code and the HTTP status the API
layer renders it with.
"""

from typing import Any, Dict, Optional


class LeadEngineError(Exception):
    """Base exception for the engine."""

    status_code = 500
    reason = "internal_error"

    def __init__(self, message: str, *, reason: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason
        self.details = details


class ValidationError(LeadEngineError):
    """Raised when an inbound payload cannot be parsed into the expected shape."""

    status_code = 400
    reason = "invalid_payload"


class AuthorizationError(LeadEngineError):
    """Raised on a missing or wrong shared secret."""

    status_code = 401
    reason = "unauthorized"


class NotFoundError(LeadEngineError):
    status_code = 404
    reason = "not_found"


class ConflictError(LeadEngineError):
    """Raised on a uniqueness violation while inserting a row."""

    status_code = 409
    reason = "conflict"


class DependencyError(LeadEngineError):
    """Raised when the outbound-call or translation provider fails."""

    status_code = 502
    reason = "dependency_failed"


class ConfigurationError(LeadEngineError):
    """Raised when credentials or endpoints for a collaborator are missing."""

    status_code = 503
    reason = "not_configured"


class StorePermissionError(LeadEngineError):
    """Raised when the store rejects an operation on access-control grounds."""

    status_code = 503
    reason = "store_permission_denied"


class StoreError(LeadEngineError):
    """Raised on any other store failure."""

    status_code = 500
    reason = "store_error"
