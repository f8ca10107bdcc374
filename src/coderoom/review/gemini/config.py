"""Google Gemini review provider configuration."""

from __future__ import annotations

from pydantic import BaseModel, SecretStr

DEFAULT_REVIEW_PROMPT = (
    "You are reviewing code written collaboratively in a shared editor. "
    "Point out bugs, unclear code and possible improvements. Be concise."
)


class GeminiReviewConfig(BaseModel):
    """Google Gemini review provider configuration."""

    api_key: SecretStr
    model: str = "gemini-2.0-flash"
    max_tokens: int = 1024
    temperature: float = 0.4
    system_prompt: str = DEFAULT_REVIEW_PROMPT
