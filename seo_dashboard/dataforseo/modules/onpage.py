"""
OnPage Module

Instant single-page audits and Lighthouse runs, plus a
technical score derived from an instant-page result.
"""

import logging
from typing import Any, Dict, List, Optional

from ..cache import CacheTTL, cache_key
from .base import BaseModule

logger = logging.getLogger(__name__)

IMPORTANT_CHECKS = [
    "is_https",
    "is_http2",
    "has_meta_title",
    "has_meta_description",
    "canonical",
    "is_responsive",
]


def _page_items(response: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Instant pages returns items either on the task or inside result[0]."""
    pages = []
    for task in (response or {}).get("tasks") or []:
        if task.get("items"):
            pages.extend(task["items"])
            continue
        for result in task.get("result") or []:
            pages.extend((result or {}).get("items") or [])
    return [p for p in pages if p]


class OnPageModule(BaseModule):
    """OnPage API endpoints."""

    async def instant_page_audit(
        self,
        url: str,
        enable_javascript: bool = False,
        load_resources: bool = False,
        accept_language: Optional[str] = None,
        skip_cache: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Crawl a single page and return its page item, or None."""
        payload: Dict[str, Any] = {
            "url": url,
            "enable_javascript": enable_javascript,
            "load_resources": load_resources,
        }
        if accept_language:
            payload["accept_language"] = accept_language

        response = await self.execute_with_cache(
            cache_key("onpage", "instant", url),
            "on_page/instant_pages",
            [payload],
            CacheTTL.ONPAGE,
            skip_cache,
        )

        pages = _page_items(response)
        if not pages:
            logger.warning(f"No instant page data for {url}: {self.get_errors(response)}")
            return None
        return pages[0]

    async def batch_instant_audit(self, urls: List[str]) -> List[Dict[str, Any]]:
        """Instant audits for several URLs in one request (not cached)."""
        if not urls:
            return []
        payload = [{"url": url, "enable_javascript": False, "load_resources": False} for url in urls]
        response = await self.execute("on_page/instant_pages", payload)
        return _page_items(response)

    async def lighthouse_audit(
        self,
        url: str,
        device: str = "desktop",
        categories: Optional[List[str]] = None,
        skip_cache: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Lighthouse JSON report for a URL."""
        payload = {
            "url": url,
            "for_mobile": device == "mobile",
            "categories": categories or ["performance", "seo", "accessibility", "best_practices"],
        }
        response = await self.execute_with_cache(
            cache_key("onpage", "lighthouse", f"{url}|{device}"),
            "on_page/lighthouse/live/json",
            [payload],
            CacheTTL.ONPAGE,
            skip_cache,
        )
        return self.extract_first_result(response)

    @staticmethod
    def calculate_technical_score(result: Optional[Dict[str, Any]]) -> int:
        """
        0-100 technical score from an instant-page result.

        onpage_score carries 30 points, Core Web Vitals 40 and the
        important checks 5 each. Missing signals are left out of the
        denominator.
        """
        if not result:
            return 0

        score = 0.0
        max_score = 0

        if result.get("onpage_score") is not None:
            score += result["onpage_score"] / 100 * 30
            max_score += 30

        timing = result.get("page_timing") or {}
        lcp = timing.get("largest_contentful_paint")
        if lcp is not None:
            score += 15 if lcp <= 2500 else 8 if lcp <= 4000 else 0
            max_score += 15

        tti = timing.get("time_to_interactive")
        if tti is not None:
            score += 15 if tti <= 3800 else 8 if tti <= 7300 else 0
            max_score += 15

        fid = timing.get("first_input_delay")
        if fid is not None:
            score += 10 if fid <= 100 else 5 if fid <= 300 else 0
            max_score += 10

        checks = result.get("checks")
        if checks:
            for check in IMPORTANT_CHECKS:
                if checks.get(check) is True:
                    score += 5
                max_score += 5

        return round(score / max_score * 100) if max_score > 0 else 0
