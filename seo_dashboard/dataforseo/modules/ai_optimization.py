"""
AI Optimization Module

LLM visibility data: AI keyword search volume, live LLM responses
(ChatGPT, Google AI Overview, Gemini, Perplexity) and LLM mentions search.
"""

import logging
from typing import Any, Dict, List, Optional

from ..cache import CacheTTL, cache_key
from .base import BaseModule, DEFAULT_LANGUAGE_CODE, DEFAULT_LOCATION_CODE

logger = logging.getLogger(__name__)

AI_PREFIX = "ai_optimization"

LLM_RESPONSE_ENDPOINTS = {
    "chat_gpt": f"{AI_PREFIX}/llm_responses/chatgpt/live",
    "google": f"{AI_PREFIX}/llm_responses/google/live/advanced",
    "gemini": f"{AI_PREFIX}/llm_responses/gemini/live",
    "perplexity": f"{AI_PREFIX}/llm_responses/perplexity/live",
}

# Accepted spellings of each platform
PLATFORM_ALIASES = {
    "chatgpt": "chat_gpt",
    "chat_gpt": "chat_gpt",
    "google": "google",
    "google ai overview": "google",
    "gemini": "gemini",
    "perplexity": "perplexity",
}

POSITIVE_WORDS = ["best", "excellent", "great", "top", "recommended", "trusted", "quality"]
NEGATIVE_WORDS = ["avoid", "bad", "poor", "worst", "not recommended", "issues"]


def normalize_platform(name: str) -> Optional[str]:
    """Canonical platform key for a user-facing name, or None if unsupported."""
    return PLATFORM_ALIASES.get((name or "").strip().lower())


def mentions_platform(platform: str) -> str:
    """LLM mentions search only knows google and chat_gpt."""
    return "google" if platform == "google" else "chat_gpt"


def extract_mention(answer: str, target: str, window: int = 100) -> Dict[str, Any]:
    """Whether `target` appears in an answer, with surrounding context and a rough sentiment."""
    lower = (answer or "").lower()
    needle = (target or "").lower()

    if not needle or needle not in lower:
        return {"mentioned": False, "context": None, "sentiment": "neutral"}

    index = lower.index(needle)
    context = answer[max(0, index - window):min(len(answer), index + len(needle) + window)]
    context_lower = context.lower()

    has_positive = any(word in context_lower for word in POSITIVE_WORDS)
    has_negative = any(word in context_lower for word in NEGATIVE_WORDS)
    sentiment = "neutral"
    if has_positive and not has_negative:
        sentiment = "positive"
    elif has_negative and not has_positive:
        sentiment = "negative"

    return {"mentioned": True, "context": context, "sentiment": sentiment}


class AiOptimizationModule(BaseModule):
    """AI Optimization API endpoints."""

    async def ai_keyword_search_volume(
        self,
        keywords: List[str],
        location_code: int = DEFAULT_LOCATION_CODE,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """Results of {keyword, ai_search_volume, impressions}."""
        if not keywords:
            return []

        response = await self.execute_with_cache(
            cache_key("ai", "volume", keywords, location_code),
            f"{AI_PREFIX}/ai_keyword_data/search_volume/live",
            [{"keywords": keywords, "location_code": location_code, "language_code": language_code}],
            CacheTTL.KEYWORDS,
            skip_cache,
        )

        first = self.extract_first_result(response)
        if first and "items" in first:
            return [item for item in (first.get("items") or []) if item]
        return self.extract_results(response)

    async def llm_response(
        self,
        platform: str,
        keyword: str,
        location_code: int = DEFAULT_LOCATION_CODE,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        depth: int = 0,
    ) -> Optional[Dict[str, Any]]:
        """
        Live answer of one LLM platform for a keyword.

        Returns the first result ({keyword, items: [{answer, citations,
        related_questions, brand_mentions}]}) or None when the task failed.
        LLM answers are not cached.
        """
        key = normalize_platform(platform)
        if key is None:
            raise ValueError(f"Unsupported LLM platform: {platform}")

        payload: Dict[str, Any] = {
            "keyword": keyword,
            "location_code": location_code,
            "language_code": language_code,
        }
        if key != "perplexity":
            payload["depth"] = depth

        response = await self.execute(LLM_RESPONSE_ENDPOINTS[key], [payload])
        result = self.extract_first_result(response)
        if result is None:
            logger.warning(f"No {key} response for '{keyword}': {self.get_errors(response)}")
        return result

    async def llm_mentions_search(
        self,
        targets: List[Dict[str, Any]],
        platform: str = "google",
        location_code: int = DEFAULT_LOCATION_CODE,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        limit: int = 10,
    ) -> Optional[Dict[str, Any]]:
        """
        LLM mentions matching the target entities.

        Each target is e.g. {"domain": "x.com", "search_filter": "include"}
        or {"keyword": "dentist", "match_type": "word_match"}.
        """
        response = await self.execute(
            f"{AI_PREFIX}/llm_mentions/search/live",
            [{
                "target": targets,
                "location_code": location_code,
                "language_code": language_code,
                "ai_platform": mentions_platform(normalize_platform(platform) or platform),
                "limit": limit,
            }],
        )
        result = self.extract_first_result(response)
        if result is not None and result.get("items") is None:
            result["items"] = []
        return result

    async def domain_mentioned_for_keyword(
        self,
        domain: str,
        keyword: str,
        platform: str,
        location_code: int = DEFAULT_LOCATION_CODE,
    ) -> bool:
        """True when LLM mentions search finds the domain for the keyword."""
        result = await self.llm_mentions_search(
            [
                {"domain": domain, "search_filter": "include"},
                {"keyword": keyword, "search_filter": "include", "match_type": "word_match"},
            ],
            platform=platform,
            location_code=location_code,
        )
        return bool(result and (result.get("items_count") or 0) > 0)
