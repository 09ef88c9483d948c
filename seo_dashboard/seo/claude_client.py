"""
Claude API Client

Thin async wrapper around the Anthropic SDK with token usage
and cost tracking, used to write keyword optimization reports.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import anthropic

from ..utils.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    """Track token usage for cost calculation."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def estimated_cost(self) -> float:
        """Estimate cost based on Claude Sonnet 4 pricing."""
        # Sonnet 4 pricing: $3/1M input, $15/1M output
        input_cost = (self.input_tokens / 1_000_000) * 3.0
        output_cost = (self.output_tokens / 1_000_000) * 15.0
        return input_cost + output_cost


@dataclass
class ClaudeResponse:
    content: str
    usage: TokenUsage
    model: str
    stop_reason: str
    success: bool = True
    error: Optional[str] = None


class ClaudeClient:
    """Async Claude client."""

    MAX_TOKENS = 4096

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY not provided")

        self.model = model or settings.CLAUDE_MODEL
        self.async_client = anthropic.AsyncAnthropic(api_key=self.api_key)

        self.total_usage = TokenUsage()
        self.call_count = 0

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = MAX_TOKENS,
    ) -> ClaudeResponse:
        """Send a single-turn prompt. API errors come back as success=False."""
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self.async_client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            return ClaudeResponse(
                content="",
                usage=TokenUsage(),
                model=self.model,
                stop_reason="error",
                success=False,
                error=str(e),
            )

        content = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")

        usage = TokenUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        self.total_usage.input_tokens += usage.input_tokens
        self.total_usage.output_tokens += usage.output_tokens
        self.call_count += 1

        logger.info(
            f"Claude call: {usage.input_tokens} in, {usage.output_tokens} out, "
            f"${usage.estimated_cost:.4f}"
        )

        return ClaudeResponse(
            content=content,
            usage=usage,
            model=self.model,
            stop_reason=response.stop_reason,
        )

    async def complete_with_retry(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_retries: int = 2,
        **kwargs,
    ) -> ClaudeResponse:
        """complete() with exponential backoff on API errors."""
        response = await self.complete(prompt, system, **kwargs)

        for attempt in range(1, max_retries + 1):
            if response.success:
                break
            wait_time = 2 ** attempt
            logger.warning(
                f"Claude call failed (attempt {attempt}/{max_retries + 1}), "
                f"retrying in {wait_time}s: {response.error}"
            )
            await asyncio.sleep(wait_time)
            response = await self.complete(prompt, system, **kwargs)

        return response

    def get_usage_summary(self) -> Dict[str, Any]:
        return {
            "total_calls": self.call_count,
            "input_tokens": self.total_usage.input_tokens,
            "output_tokens": self.total_usage.output_tokens,
            "total_tokens": self.total_usage.total_tokens,
            "estimated_cost": self.total_usage.estimated_cost,
        }
