"""
Outbound channels for follow-up dispatch.
"""

from .base import CallDispatchRequest, CallDispatchResult, OutboundCallProvider
from .voice_call import VoiceAgentCallProvider

__all__ = [
    "CallDispatchRequest",
    "CallDispatchResult",
    "OutboundCallProvider",
    "VoiceAgentCallProvider",
]
