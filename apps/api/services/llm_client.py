"""Completion collaborator: one JSON-shaped chat completion per call."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from openai import APIStatusError, AsyncOpenAI, RateLimitError

from config import settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a creative Telugu content writer who specializes in viral reel scripts. "
    "Always answer with valid JSON only."
)


class GenerationError(Exception):
    """Completion failed for a reason that retrying will not fix."""


class GenerationRateLimited(GenerationError):
    """Provider throttled the request; safe to retry after a delay."""


class GenerationUnavailable(GenerationError):
    """No completion provider is configured."""


def is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, GenerationRateLimited)


@dataclass
class Completion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


def get_openai_client(api_key: str) -> Optional[AsyncOpenAI]:
    """Get OpenAI client, handling placeholders."""
    if not api_key or "your_" in api_key or api_key == "test-key":
        return None
    return AsyncOpenAI(api_key=api_key)


class ScriptCompletionClient:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.model = model or settings.OPENAI_MODEL
        self._client = get_openai_client(settings.OPENAI_API_KEY if api_key is None else api_key)

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(self, prompt: str, json_output: bool = True) -> Completion:
        if self._client is None:
            raise GenerationUnavailable("OpenAI API key missing or unavailable")

        kwargs = {}
        if json_output:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                **kwargs,
            )
        except RateLimitError as exc:
            raise GenerationRateLimited(str(exc)) from exc
        except APIStatusError as exc:
            if exc.status_code == 429:
                raise GenerationRateLimited(str(exc)) from exc
            raise GenerationError(f"openai_error: {exc}") from exc
        except Exception as exc:
            raise GenerationError(f"openai_error: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        usage = getattr(response, "usage", None)
        completion = Completion(
            text=content or "",
            input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
        )
        logger.info(
            "Completion from %s: input_tokens=%s output_tokens=%s",
            self.model,
            completion.input_tokens,
            completion.output_tokens,
        )
        return completion
