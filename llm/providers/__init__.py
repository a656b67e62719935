"""
Translation provider implementations.
"""

from .openai_provider import OpenAITranslator

__all__ = ["OpenAITranslator"]
