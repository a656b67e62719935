"""
API Module for the Lead Lifecycle Engine.

FastAPI application with routes for:
- Call-ended webhooks
- Manual leads, deletion, and site visits
- Scheduled call dispatch
- Dashboard metrics
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
