"""
Shared-secret authentication for the Lead Lifecycle Engine API.

Three credentials are recognised:
- the webhook secret, sent by the voice-AI workflow on call-ended events
- the dispatch secret, sent by the scheduler that triggers call dispatch
- the operator API key, sent by the dashboard for lead administration
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from api.services import Services, get_services
from utils.exceptions import AuthorizationError

logger = logging.getLogger(__name__)

# ── Security schemes ───────────────────────────────────────────────
API_KEY_HEADER = "X-API-Key"
WEBHOOK_SECRET_HEADER = "x-webhook-secret"
DISPATCH_SECRET_HEADER = "x-dispatch-secret"
LEGACY_CRON_SECRET_HEADER = "x-cron-secret"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


def secrets_match(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison of a presented secret."""
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


# ── Dependencies ──────────────────────────────────────────────────

async def require_webhook_secret(
    x_webhook_secret: Optional[str] = Header(default=None, alias=WEBHOOK_SECRET_HEADER),
    services: Services = Depends(get_services),
) -> None:
    """Validate the webhook secret; open when no secret is configured."""
    expected = services.settings.webhook_secret
    if not expected:
        return

    if not secrets_match(x_webhook_secret, expected):
        logger.warning("Rejected webhook with missing or invalid secret")
        raise AuthorizationError("Invalid webhook secret")


async def require_dispatch_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    x_dispatch_secret: Optional[str] = Header(default=None, alias=DISPATCH_SECRET_HEADER),
    x_cron_secret: Optional[str] = Header(default=None, alias=LEGACY_CRON_SECRET_HEADER),
    services: Services = Depends(get_services),
) -> None:
    """
    Validate the dispatch secret.

    Unset means open. A secret configured as blank denies every caller.
    Accepted as a bearer token or either dispatch header.
    """
    expected = services.settings.effective_dispatch_secret
    if expected is None:
        return

    expected = expected.strip()
    if not expected:
        logger.warning("Dispatch secret is blank; denying dispatch trigger")
        raise AuthorizationError("Dispatch is not authorized")

    candidates = [
        credentials.credentials if credentials else None,
        x_dispatch_secret,
        x_cron_secret,
    ]
    if not any(secrets_match(candidate, expected) for candidate in candidates):
        logger.warning("Rejected dispatch trigger with missing or invalid secret")
        raise AuthorizationError("Dispatch is not authorized")


async def require_operator_key(
    api_key: Optional[str] = Security(api_key_header),
    services: Services = Depends(get_services),
) -> None:
    """Validate the operator API key."""
    expected = services.settings.lead_engine_api_key

    # Skip auth if no key configured (development mode)
    if not expected:
        logger.warning("Operator API key authentication disabled - no key configured")
        return

    if not api_key:
        raise AuthorizationError("API key required")

    if not secrets_match(api_key, expected):
        logger.warning("Invalid API key attempt")
        raise AuthorizationError("Invalid API key")
