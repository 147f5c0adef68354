"""Suggestion Service: turn a task description into a structured suggestion.

Builds the prompt, enforces the per-user daily quota, calls the configured
LLM provider and hands the reply to the parsing pipeline.
"""

import logging
import time
import uuid
from datetime import date

from taskmind.services.llm_provider import LLMProvider, LLMProviderError
from taskmind.services.suggestion_parsing_service import (
    FinalSuggestion,
    SuggestionParseError,
    parse_suggestion,
)

logger = logging.getLogger(__name__)

SUGGESTION_PROMPT = """Analyze this task: "{description}". Provide JSON with:
- title (short string)
- subtasks (array of 3-5 strings)
- priority (low/medium/high)
- time_estimate (number of days) as string
Example: {{"title": "Project Setup", "subtasks": ["Install dependencies", "Configure CI/CD"], "priority": "high", "time_estimate": "2"}}
Return ONLY valid JSON:"""


class SuggestionQuotaExceeded(Exception):
    """The user has used up today's AI suggestions."""


def build_prompt(description: str) -> str:
    return SUGGESTION_PROMPT.format(description=description)


async def check_rate_limit(redis_client, user_id: uuid.UUID, limit: int = 20) -> bool:
    """Check and increment daily rate limit. Returns True if within limit."""
    key = f"ai_suggest:{user_id}:{date.today().isoformat()}"
    count = await redis_client.incr(key)
    if count == 1:
        await redis_client.expire(key, 86400)
    return count <= limit


async def suggest_task(
    provider: LLMProvider | None,
    description: str,
    user_id: uuid.UUID,
    redis_client=None,
    daily_limit: int = 20,
) -> FinalSuggestion:
    """Ask the LLM to break a task down and normalize its answer.

    Raises ``SuggestionQuotaExceeded``, ``LLMProviderError`` or a
    ``SuggestionParseError`` subclass; none of them is retried.
    """
    start = time.monotonic()
    logger.info("AI suggestion requested by user %s", user_id)

    if provider is None:
        raise LLMProviderError("AI service unavailable")

    if redis_client is not None and not await check_rate_limit(redis_client, user_id, daily_limit):
        raise SuggestionQuotaExceeded("Daily AI suggestion limit reached")

    try:
        reply = await provider.generate(build_prompt(description))
    except LLMProviderError as e:
        logger.warning("LLM call failed (%s): %s", e.kind, e)
        raise

    logger.debug("Raw model reply: %r", reply)

    try:
        suggestion = parse_suggestion(reply)
    except SuggestionParseError as e:
        logger.warning("Rejected model reply: %s (%s)", e.kind, e.reason)
        if e.value is not None:
            logger.debug("Rejected value: %r", e.value)
        raise

    logger.info("AI suggestion completed in %.2fs", time.monotonic() - start)
    return suggestion
