"""
OpenAI translation provider.
"""

import logging
from typing import Any, Optional

from openai import AsyncOpenAI, OpenAIError

from utils.exceptions import ConfigurationError, DependencyError
from ..translator import Translator

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "Translate the following {language} text into natural English. "
    "Only return the translated English sentence.\n\n{language}: {text}"
)


def first_output_text(response: Any) -> Optional[str]:
    """First non-empty text block of a Responses API result."""
    for item in getattr(response, "output", None) or []:
        for content in getattr(item, "content", None) or []:
            text = getattr(content, "text", None)
            if isinstance(text, str) and text.strip():
                return text.strip()
    return None


class OpenAITranslator(Translator):
    """
    Translator backed by the OpenAI Responses API.

    Uses a bounded timeout and no client-side retries; a slow or failed call
    surfaces as DependencyError so callers can store no English text instead.
    """

    DEFAULT_MODEL = "gpt-4.1-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        timeout_seconds: float = 20.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI translator.

        Args:
            api_key: OpenAI API key
            model_id: Model ID
            timeout_seconds: Request timeout
            client: Pre-built client (tests)
        """
        self.model_id = model_id
        self._client = client
        if self._client is None and api_key:
            self._client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)

        logger.info(f"OpenAI translator initialized: {model_id}")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def translate(self, text: str, source_language: str = "Hindi") -> str:
        if not text or not text.strip():
            raise DependencyError("Nothing to translate", reason="translation_empty_input")
        if self._client is None:
            raise ConfigurationError("Translation provider is not configured", reason="translation_not_configured")

        try:
            response = await self._client.responses.create(
                model=self.model_id,
                input=PROMPT_TEMPLATE.format(language=source_language, text=text),
            )
        except OpenAIError as e:
            logger.error(f"OpenAI translation failed: {type(e).__name__}")
            raise DependencyError("Translation provider request failed", reason="translation_failed") from e

        translated = first_output_text(response)
        if not translated:
            raise DependencyError("Translation provider returned no text", reason="translation_empty")
        return translated

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
