"""Shared fixtures for Lead Lifecycle Engine tests."""

import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import pytest

# Keep the module-level app from picking up real credentials
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("OPENAI_API_KEY", "")

from channels.base import CallDispatchRequest, CallDispatchResult, OutboundCallProvider
from database.repositories import Store
from database.session import Database
from llm.translator import Translator
from utils.exceptions import DependencyError

FIXED_NOW = datetime(2026, 3, 10, 9, 30, 0)


class FakeCallProvider(OutboundCallProvider):
    """Records dispatch requests; optionally fails for given phones."""

    def __init__(self, configured: bool = True, failing_numbers: Optional[List[str]] = None):
        self.configured = configured
        self.failing_numbers = set(failing_numbers or [])
        self.requests: List[CallDispatchRequest] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def dispatch_call(self, request: CallDispatchRequest) -> CallDispatchResult:
        self.requests.append(request)
        if request.to_number in self.failing_numbers:
            raise DependencyError("Outbound call provider rejected the call", details={"status": 500})
        return CallDispatchResult(request_id=f"req-{len(self.requests)}", raw={"ok": True})


class FakeTranslator(Translator):
    def __init__(self, translations=None, error: Optional[Exception] = None):
        self.translations = translations or {}
        self.error = error
        self.calls = []

    async def translate(self, text: str, source_language: str = "Hindi") -> str:
        self.calls.append((text, source_language))
        if self.error is not None:
            raise self.error
        return self.translations.get(text, "")


@asynccontextmanager
async def open_store(path):
    db = Database(f"sqlite:///{path / 'leads.db'}")
    await db.create_all()
    try:
        yield Store(db)
    finally:
        await db.dispose()


@pytest.fixture
def store_at(tmp_path):
    """Async context manager factory for a fresh file-backed SQLite store."""
    return lambda: open_store(tmp_path)


@pytest.fixture
def call_provider():
    return FakeCallProvider()


def call_ended_payload(
    phone: Optional[str] = "+971 50 123 4567",
    duration: int = 310,
    transcript: Optional[str] = "I am ready to move and my budget is approved",
    visit_time: Optional[str] = "tomorrow at 5 pm",
    **extracted,
):
    variables = {"customer_name": "Omar Haddad", "property_use": "buy apartment"}
    if visit_time is not None:
        variables["visit_time"] = visit_time
    variables.update(extracted)
    return {
        "call_date": "2026-03-10T09:00:00Z",
        "to_number": phone,
        "call_duration": duration,
        "call_report": {
            "transcript": transcript,
            "summary": None,
            "recording_url": "https://recordings.example.com/abc.mp3",
            "extracted_variables": variables,
        },
    }


@pytest.fixture
def payload_factory():
    return call_ended_payload
