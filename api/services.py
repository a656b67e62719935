"""
Service initialization and dependency injection for the Lead Lifecycle Engine API.

``Services`` is built once per application from ``Settings`` and stored on
``app.state``; route handlers reach it through ``get_services``. Tests build
their own instance with an in-memory or file-backed store and fake providers.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from channels.base import OutboundCallProvider
from channels.voice_call import VoiceAgentCallProvider
from config.settings import Settings
from database.repositories import Store
from database.session import Database
from lead_scoring.assignment import RepAssignor
from lead_scoring.scoring_model import IntentScorer, KeywordIntentScorer
from lifecycle.call_ended import CallEndedProcessor
from lifecycle.dispatch import DispatchBatchProcessor
from lifecycle.manual import ManualLeadService
from lifecycle.site_visits import SiteVisitService
from llm.providers.openai_provider import OpenAITranslator
from llm.translator import Translator
from normalization.text import EnglishTextNormalizer
from utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(
        self,
        settings: Settings,
        db: Optional[Database] = None,
        translator: Optional[Translator] = None,
        call_provider: Optional[OutboundCallProvider] = None,
        scorer: Optional[IntentScorer] = None,
    ):
        self.settings = settings
        self.db = db
        self._store = Store(db) if db is not None else None
        self.translator = translator
        self.text_normalizer = EnglishTextNormalizer(translator)
        self.call_provider = call_provider or VoiceAgentCallProvider.from_settings(settings)
        self.scorer = scorer or KeywordIntentScorer()
        self._dispatch_processor: Optional[DispatchBatchProcessor] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Services":
        """Build every service the settings make available."""
        db = None
        if settings.is_store_configured:
            db = Database(
                settings.database_url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                echo=settings.debug,
            )
        else:
            logger.warning("DATABASE_URL not set, lead endpoints disabled")

        translator = None
        if settings.is_translation_configured:
            translator = OpenAITranslator(
                api_key=settings.openai_api_key,
                model_id=settings.translation_model,
                timeout_seconds=settings.translation_timeout_seconds,
            )
        else:
            logger.warning("OPENAI_API_KEY not set, Hindi translation disabled")

        if not settings.is_outbound_call_configured:
            logger.warning("Outbound call provider not configured, dispatch disabled")

        return cls(settings, db=db, translator=translator)

    # ── Accessors ──────────────────────────────────────────────────

    @property
    def store(self) -> Store:
        if self._store is None:
            raise ConfigurationError("Lead store is not configured", reason="store_not_configured")
        return self._store

    @property
    def assignor(self) -> RepAssignor:
        return RepAssignor(self.store)

    def call_ended_processor(self) -> CallEndedProcessor:
        return CallEndedProcessor(self.store, self.scorer, self.assignor, text_normalizer=self.text_normalizer)

    def manual_leads(self) -> ManualLeadService:
        return ManualLeadService(self.store, self.assignor)

    def site_visits(self) -> SiteVisitService:
        return SiteVisitService(self.store)

    def dispatch_processor(self) -> DispatchBatchProcessor:
        # Kept for the app's lifetime so the store access check runs once.
        if self._dispatch_processor is None:
            self._dispatch_processor = DispatchBatchProcessor.from_settings(
                self.store, self.call_provider, self.settings
            )
        return self._dispatch_processor

    # ── Lifecycle ──────────────────────────────────────────────────

    async def startup(self) -> None:
        if self.db is None or not self.settings.database_auto_create:
            return
        try:
            await self.db.create_all()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Schema creation failed: {e}")
            logger.warning("API starting in degraded mode")

    async def shutdown(self) -> None:
        if isinstance(self.translator, OpenAITranslator):
            await self.translator.close()
        if self.db is not None:
            await self.db.dispose()

    def health(self) -> Dict[str, Any]:
        """Get health status of configured services."""
        return {
            "store": self._store is not None,
            "outbound_call": self.call_provider.is_configured,
            "translation": self.translator is not None,
        }


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's services."""
    return request.app.state.services
