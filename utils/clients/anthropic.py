"""
Anthropic API client utilities for the framework analyzer.

This module contains functions for interacting with the Anthropic Claude API
with automatic retry logic for transient failures.
"""

from typing import Optional

import anthropic
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from config import settings

# Lazy initialization of Anthropic client
_anthropic_client: Optional[anthropic.AsyncAnthropic] = None


def get_anthropic_client() -> anthropic.AsyncAnthropic:
    """Get or create the async Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
    return _anthropic_client


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(
        (anthropic.APIConnectionError, anthropic.RateLimitError)
    ),
    reraise=True,
)
async def call_anthropic_api_with_retry(
    prompt: str,
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
) -> str:
    """
    Calls Anthropic API with automatic retry logic for transient failures.

    Retries up to 3 times for:
    - APIConnectionError (network issues)
    - RateLimitError (rate limit exceeded)

    Does NOT retry for:
    - AuthenticationError (bad API key)
    - BadRequestError (malformed request)
    - Other permanent errors

    Args:
        prompt: Complete text prompt
        model: Model override (defaults to settings.ANTHROPIC_MODEL)
        max_tokens: Token limit override (defaults to settings.MAX_TOKENS)

    Returns:
        Concatenated text of the response content blocks
    """
    client = get_anthropic_client()
    message = await client.messages.create(
        model=model or settings.ANTHROPIC_MODEL,
        max_tokens=max_tokens or settings.MAX_TOKENS,
        messages=[{"role": "user", "content": prompt}],
    )
    return "".join(
        block.text for block in message.content if getattr(block, "type", None) == "text"
    )
