"""
Abstract outbound-call provider.

Base class for voice-call dispatch integrations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class CallDispatchRequest:
    """One outbound call to place."""
    to_number: str
    lead_id: str
    follow_up_id: str
    customer_name: Optional[str] = None


@dataclass
class CallDispatchResult:
    """Provider acknowledgement of an accepted call."""
    request_id: Optional[str] = None
    raw: Any = None


class OutboundCallProvider(ABC):
    """Abstract base class for outbound-call providers."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def dispatch_call(self, request: CallDispatchRequest) -> CallDispatchResult:
        """
        Place a call.

        Raises:
            ConfigurationError: when endpoint or credentials are missing
            DependencyError: on transport failure or a non-2xx response
        """
        ...
