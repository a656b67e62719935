"""
Voice-agent outbound call provider.

POSTs to ``{base_url}/api/v1/calls/dispatch`` with bearer auth. Any non-2xx
status is a hard failure for that follow-up.
"""

import json
import logging
from typing import Optional

import httpx

from utils.exceptions import ConfigurationError, DependencyError
from .base import CallDispatchRequest, CallDispatchResult, OutboundCallProvider

logger = logging.getLogger(__name__)

DISPATCH_PATH = "/api/v1/calls/dispatch"


class VoiceAgentCallProvider(OutboundCallProvider):
    """Outbound calls through the voice-agent dispatch API."""

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        agent_id: Optional[str],
        from_number_id: Optional[str],
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.agent_id = agent_id
        self.from_number_id = from_number_id
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "VoiceAgentCallProvider":
        return cls(
            base_url=settings.outbound_call_base_url,
            api_key=settings.outbound_call_api_key,
            agent_id=settings.outbound_call_agent_id,
            from_number_id=settings.outbound_call_from_number_id,
            timeout_seconds=settings.outbound_call_timeout_seconds,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return all([self.base_url, self.api_key, self.agent_id, self.from_number_id])

    def _from_number_id(self) -> int:
        try:
            return int(str(self.from_number_id).strip())
        except ValueError:
            raise ConfigurationError(
                "Outbound call from-number id must be a number",
                reason="outbound_call_misconfigured",
            ) from None

    async def dispatch_call(self, request: CallDispatchRequest) -> CallDispatchResult:
        if not self.is_configured:
            raise ConfigurationError("Outbound call provider is not configured", reason="outbound_call_not_configured")

        payload = {
            "agent_id": self.agent_id,
            "to_number": request.to_number,
            "from_number_id": self._from_number_id(),
            "call_context": {
                "name": request.customer_name or "Lead",
                "lead_id": request.lead_id,
                "follow_up_id": request.follow_up_id,
            },
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout_seconds) as client:
                resp = await client.post(f"{self.base_url}{DISPATCH_PATH}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Outbound call request failed: {type(e).__name__}")
            raise DependencyError("Outbound call provider unreachable", reason="outbound_call_failed") from e

        text = resp.text
        if not resp.is_success:
            logger.error(f"Outbound call dispatch rejected with status {resp.status_code}")
            logger.debug("Outbound call error body: %s", text[:200])
            raise DependencyError(
                f"Outbound call provider returned {resp.status_code}",
                reason="outbound_call_failed",
                details={"status": resp.status_code},
            )

        try:
            data = json.loads(text) if text else None
        except ValueError:
            data = text

        request_id = None
        if isinstance(data, dict) and isinstance(data.get("request_id"), str):
            request_id = data["request_id"]

        return CallDispatchResult(request_id=request_id, raw=data)
