"""
Language Module for the Lead Lifecycle Engine.

This module handles:
- Translation provider abstraction
- OpenAI-backed translation of non-English call text
"""

from .translator import Translator
from .providers import OpenAITranslator

__all__ = [
    "Translator",
    "OpenAITranslator",
]
