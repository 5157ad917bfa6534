"""
Generation collaborators.

The core only needs `await generator.generate(prompt, ...) -> str`.
ClaudeGenerator is the production adapter; failures are re-raised as
GenerationError carrying a classification hint.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING
import asyncio
import logging
import re

from legacy_modernizer.errors import GenerationError

if TYPE_CHECKING:
    import anthropic

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for the Claude API client."""
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 4000
    temperature: float = 0.7
    timeout: float = 120.0
    min_request_interval: float = 0.0  # seconds to wait before each request


class TextGenerator:
    """Interface for text generation services."""

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str = "",
        temperature: float = 0.7,
        max_tokens: int = 4000,
    ) -> str:
        raise NotImplementedError


_RATE_LIMIT_RE = re.compile(r"\b429\b|rate limit|too many requests|\boverloaded\b|\bquota\b")
_NETWORK_RE = re.compile(r"timed out|\btimeout\b|\bconnection\b")


def classify_api_error(error: Exception) -> Optional[str]:
    """Map an API exception to a failure kind name, if recognisable."""
    error_str = str(error).lower()
    name = type(error).__name__

    if name == "RateLimitError" or _RATE_LIMIT_RE.search(error_str):
        return "rate_limit"
    if name in ("APITimeoutError", "APIConnectionError") or _NETWORK_RE.search(error_str):
        return "network_failure"
    return None


class ClaudeGenerator(TextGenerator):
    """Thin async wrapper around Anthropic's Claude API."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self._client: Optional["anthropic.AsyncAnthropic"] = None

    @property
    def client(self) -> "anthropic.AsyncAnthropic":
        """Lazy initialization of Anthropic client."""
        if self._client is None:
            try:
                import anthropic
                self._client = anthropic.AsyncAnthropic(
                    api_key=self.config.api_key,
                    timeout=self.config.timeout,
                    max_retries=0,
                )
            except ImportError:
                raise ImportError(
                    "anthropic library not installed. "
                    "Run: pip install anthropic"
                )
        return self._client

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str = "",
        temperature: float = 0.7,
        max_tokens: int = 4000,
    ) -> str:
        if self.config.min_request_interval:
            await asyncio.sleep(self.config.min_request_interval)

        kwargs = {
            "model": self.config.model,
            "max_tokens": max_tokens,
            "temperature": max(0.0, min(temperature, 1.0)),
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            message = await self.client.messages.create(**kwargs)
        except ImportError:
            raise
        except Exception as e:
            kind = classify_api_error(e)
            logger.warning(f"Generation failed ({kind or 'unclassified'}): {type(e).__name__}: {e}")
            raise GenerationError(f"{type(e).__name__}: {e}", kind=kind) from e

        result = ""
        for block in message.content:
            if hasattr(block, "text"):
                result += block.text
        return result.strip()
