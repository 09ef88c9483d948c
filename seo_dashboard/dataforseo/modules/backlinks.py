"""
Backlinks Module

Backlink summary, referring domains, anchors and spam scores,
plus an authority score and link-quality assessment built from
the summary.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from ..cache import CacheTTL, cache_key
from .base import BaseModule

logger = logging.getLogger(__name__)


class BacklinksModule(BaseModule):
    """Backlinks API endpoints."""

    async def summary(
        self,
        target: str,
        include_subdomains: bool = True,
        exclude_internal_backlinks: bool = True,
        skip_cache: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Backlink summary (rank is on the default 0-1000 scale)."""
        response = await self.execute_with_cache(
            cache_key("backlinks", "summary", target),
            "backlinks/summary/live",
            [{
                "target": target,
                "include_subdomains": include_subdomains,
                "exclude_internal_backlinks": exclude_internal_backlinks,
                "internal_list_limit": 0,
                "backlinks_status_type": "live",
            }],
            CacheTTL.BACKLINKS,
            skip_cache,
        )
        return self.extract_first_result(response)

    async def referring_domains(
        self,
        target: str,
        limit: int = 100,
        offset: int = 0,
        order_by: str = "rank,desc",
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        response = await self.execute_with_cache(
            cache_key("backlinks", "refdomains", f"{target}|{limit}|{offset}|{order_by}"),
            "backlinks/referring_domains/live",
            [{
                "target": target,
                "include_subdomains": True,
                "limit": limit,
                "offset": offset,
                "order_by": [order_by],
            }],
            CacheTTL.BACKLINKS,
            skip_cache,
        )
        return self.extract_items(response)

    async def anchors(
        self,
        target: str,
        limit: int = 50,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        response = await self.execute_with_cache(
            cache_key("backlinks", "anchors", f"{target}|{limit}"),
            "backlinks/anchors/live",
            [{"target": target, "include_subdomains": True, "limit": limit}],
            CacheTTL.BACKLINKS,
            skip_cache,
        )
        return self.extract_items(response)

    async def bulk_spam_score(
        self,
        targets: List[str],
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """Spam score per target (up to 1000 targets)."""
        if not targets:
            return []

        targets = targets[:1000]
        response = await self.execute_with_cache(
            cache_key("backlinks", "spam", targets),
            "backlinks/bulk_spam_score/live",
            [{"targets": targets}],
            CacheTTL.BACKLINKS,
            skip_cache,
        )
        return self.extract_items(response)

    # =========================================================================
    # Scoring
    # =========================================================================

    @staticmethod
    def calculate_authority_score(summary: Optional[Dict[str, Any]]) -> int:
        """
        Weighted 0-100 authority score from a backlinks summary.

        rank 40%, referring domains 30%, backlinks 15%,
        referring IPs 10%, inverted spam score 5%.
        """
        if not summary:
            return 0

        rank = summary.get("rank") or 0
        referring_domains = summary.get("referring_domains") or 0
        backlinks = summary.get("backlinks") or 0
        referring_ips = summary.get("referring_ips") or 0
        spam_score = summary.get("backlinks_spam_score") or 0

        score = min(rank / 1000, 1) * 40
        score += min(math.log10(max(referring_domains, 1)) / 4 * 30, 30)
        score += min(math.log10(max(backlinks, 1)) / 6 * 15, 15)
        score += min(math.log10(max(referring_ips, 1)) / 4 * 10, 10)
        score += (100 - spam_score) / 100 * 5

        return round(score)

    async def assess_link_quality(self, target: str, skip_cache: bool = False) -> Dict[str, Any]:
        """Overall score, dofollow ratio, spam risk and the top issues."""
        summary = await self.summary(target, skip_cache=skip_cache)

        if not summary:
            return {
                "overallScore": 0,
                "referringDomains": 0,
                "dofollowRatio": 0,
                "spamRisk": "high",
                "topIssues": ["Unable to retrieve backlink data"],
            }

        issues = []

        total_domains = summary.get("referring_domains") or 0
        nofollow_domains = summary.get("referring_domains_nofollow") or 0
        dofollow_ratio = (total_domains - nofollow_domains) / total_domains if total_domains > 0 else 0

        spam_score = summary.get("backlinks_spam_score") or 0
        spam_risk = "low"
        if spam_score >= 60:
            spam_risk = "high"
            issues.append("High spam score indicates potential toxic backlinks")
        elif spam_score >= 30:
            spam_risk = "medium"
            issues.append("Moderate spam score - review backlink sources")

        if total_domains < 50:
            issues.append("Low referring domain count")

        if dofollow_ratio < 0.5:
            issues.append("High proportion of nofollow links")

        if (summary.get("broken_backlinks") or 0) > (summary.get("backlinks") or 0) * 0.1:
            issues.append("Significant number of broken backlinks")

        return {
            "overallScore": self.calculate_authority_score(summary),
            "referringDomains": total_domains,
            "dofollowRatio": round(dofollow_ratio, 2),
            "spamRisk": spam_risk,
            "topIssues": issues[:5],
        }
