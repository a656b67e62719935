"""
API Routes for the Lead Lifecycle Engine.
"""

from . import dashboard, leads, scheduled, webhooks

__all__ = ["webhooks", "leads", "scheduled", "dashboard"]
