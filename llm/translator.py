"""
Translation provider interface.
"""

from abc import ABC, abstractmethod


class Translator(ABC):
    """Turns non-English text into English."""

    @abstractmethod
    async def translate(self, text: str, source_language: str = "Hindi") -> str:
        """
        Translate ``text`` into natural English.

        Raises:
            ConfigurationError: when the provider has no credentials
            DependencyError: when the provider fails or returns no usable text
        """
