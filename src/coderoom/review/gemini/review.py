"""Google Gemini review provider - reviews code via the Google Generative AI API."""

from __future__ import annotations

import logging
from typing import Any

from coderoom.review.base import ReviewError, ReviewProvider
from coderoom.review.gemini.config import GeminiReviewConfig

logger = logging.getLogger("coderoom.review.gemini")

_RETRYABLE_STATUS = (429, 500, 502, 503)


class GeminiReviewProvider(ReviewProvider):
    """Review provider using the Google Gemini API."""

    def __init__(self, config: GeminiReviewConfig) -> None:
        try:
            from google import genai as _genai
            from google.genai import types as _types
        except ImportError as exc:
            raise ImportError(
                "google-genai is required for GeminiReviewProvider. "
                "Install it with: pip install coderoom[gemini]"
            ) from exc

        self._config = config
        self._types = _types
        self._client = _genai.Client(api_key=config.api_key.get_secret_value())

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def model_name(self) -> str:
        return self._config.model

    async def review(self, source_text: str) -> str:
        gen_config = self._types.GenerateContentConfig(
            system_instruction=self._config.system_prompt,
            temperature=self._config.temperature,
            max_output_tokens=self._config.max_tokens,
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.model,
                contents=source_text,
                config=gen_config,
            )
        except Exception as exc:
            raise self._to_review_error(exc) from exc

        text = getattr(response, "text", None)
        if not text:
            raise ReviewError("empty review response", provider=self.name)
        return str(text)

    def _to_review_error(self, exc: Exception) -> ReviewError:
        status_code: Any = getattr(exc, "code", None) or getattr(exc, "status_code", None)
        if not isinstance(status_code, int):
            status_code = None
        if status_code is not None:
            retryable = status_code in _RETRYABLE_STATUS
        else:
            message = str(exc).lower()
            retryable = any(term in message for term in ("rate", "limit", "429", "503"))
        logger.warning("Gemini review failed (status=%s): %s", status_code, exc)
        return ReviewError(
            str(exc),
            retryable=retryable,
            provider=self.name,
            status_code=status_code,
        )

    async def close(self) -> None:
        """Release the genai client reference."""
        self._client = None  # type: ignore[assignment]
