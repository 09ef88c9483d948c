"""
Tests for the full site audit: domain helpers, step payloads, scoring
and the audit job's step isolation.
"""

import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

from seo_dashboard.database.models import Audit, AuditStatus
from seo_dashboard.database.operations import audits as audit_ops
from seo_dashboard.dataforseo.errors import DataForSEOError
from seo_dashboard.jobs.audit import (
    calculate_scores,
    count_issues,
    run_audit,
    run_backlinks_step,
    run_business_step,
    run_competitor_step,
    run_onpage_step,
)
from seo_dashboard.utils.domains import domain_from_url, domains_match, is_valid_domain, normalize_domain


# ============================================================================
# Domain Helpers
# ============================================================================

class TestDomainHelpers:
    """Tests for domain normalization and validation"""

    @pytest.mark.parametrize("value,expected", [
        ("https://www.Example.com/path?q=1", "example.com"),
        ("http://shop.example.co.uk:8080", "shop.example.co.uk"),
        ("example.com.", "example.com"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, value, expected):
        assert normalize_domain(value) == expected

    def test_valid(self):
        assert is_valid_domain("example.com")
        assert is_valid_domain("sub.example-site.io")
        assert not is_valid_domain("localhost")
        assert not is_valid_domain("exa mple.com")
        assert not is_valid_domain(None)

    def test_domain_from_url(self):
        assert domain_from_url("https://www.example.com/services") == "example.com"
        assert domain_from_url("example.com/about") == "example.com"
        assert domain_from_url(None) == ""

    def test_domains_match(self):
        assert domains_match("www.example.com", "https://example.com/")
        assert not domains_match("example.com", "example.org")
        assert not domains_match("", "")


# ============================================================================
# Scoring
# ============================================================================

class TestCalculateScores:
    """Tests for per-area and overall scores"""

    def test_all_steps(self):
        scores = calculate_scores({
            "onPage": {"technicalScore": 80},
            "serp": {"discoveryKeywords": [
                {"position": 1}, {"position": 5}, {"position": 15}, {"position": None},
            ]},
            "backlinks": {"authorityScore": 40},
            "business": {"found": True, "completeness": {"score": 70}},
        })

        assert scores == {"overall": 64, "technical": 80, "content": 67, "local": 70, "backlinks": 40}

    def test_no_steps(self):
        assert calculate_scores({}) == {
            "overall": None, "technical": None, "content": None, "local": None, "backlinks": None,
        }

    def test_serp_without_rankings(self):
        scores = calculate_scores({"serp": {"discoveryKeywords": []}})
        assert scores["content"] == 0
        assert scores["overall"] == 0

    def test_business_not_found(self):
        scores = calculate_scores({"business": {"found": False}, "backlinks": {"authorityScore": 50}})
        assert scores["local"] is None
        assert scores["overall"] == 50


class TestCountIssues:
    """Tests for on-page issue counting"""

    def test_counts(self):
        page = {
            "broken_links": 2,
            "duplicate_content": True,
            "meta": {"images_without_alt": 3},
            "checks": {
                "has_meta_title": True,
                "has_meta_description": False,
                "is_https": True,
                "is_responsive": True,
            },
        }
        assert count_issues(page) == 7

    def test_empty(self):
        assert count_issues(None) == 0
        assert count_issues({}) == 0


# ============================================================================
# Steps
# ============================================================================

class TestOnPageStep:
    """Tests for the on-page step and its concurrent HTTPS check"""

    @pytest.mark.asyncio
    async def test_https_check_result_used(self, mock_dataforseo):
        mock_dataforseo.onpage.instant_page_audit = AsyncMock(return_value={
            "status_code": 200, "checks": {"is_https": True}, "meta": {"title": "Example Plumbing"},
        })
        mock_dataforseo.onpage.lighthouse_audit = AsyncMock(return_value={
            "categories": {"performance": {"score": 0.81}},
        })

        with patch("seo_dashboard.jobs.audit.verify_https", AsyncMock(return_value=True)):
            result = await run_onpage_step(mock_dataforseo, "example.com")

        assert result["isHttps"] is True
        assert result["metaTitle"] == "Example Plumbing"
        assert result["lighthouse"]["performance"] == 81

    @pytest.mark.asyncio
    async def test_https_check_cancelled_when_audit_fails(self, mock_dataforseo):
        started = {}

        async def slow_https(domain):
            started["task"] = asyncio.current_task()
            await asyncio.Event().wait()

        async def failing_audit(*args, **kwargs):
            await asyncio.sleep(0)
            raise DataForSEOError("Service unavailable", status_code=50000)

        mock_dataforseo.onpage.instant_page_audit = AsyncMock(side_effect=failing_audit)

        with patch("seo_dashboard.jobs.audit.verify_https", slow_https):
            with pytest.raises(DataForSEOError):
                await run_onpage_step(mock_dataforseo, "example.com")
            await asyncio.sleep(0)

        assert started["task"].cancelled()
        mock_dataforseo.onpage.lighthouse_audit.assert_not_called()


class TestBacklinksStep:
    """Tests for the backlinks step payload"""

    @pytest.mark.asyncio
    async def test_summary(self, mock_dataforseo):
        mock_dataforseo.backlinks.summary = AsyncMock(return_value={
            "backlinks": 1000,
            "referring_domains": 100,
            "referring_domains_nofollow": 20,
            "rank": 300,
            "backlinks_spam_score": 5,
        })
        mock_dataforseo.backlinks.referring_domains = AsyncMock(return_value=[
            {"domain": "news.com", "backlinks": 10, "rank": 200},
        ])
        mock_dataforseo.backlinks.anchors = AsyncMock(return_value=[
            {"anchor": "example plumbing", "backlinks": 30},
            {"anchor": None, "backlinks": 10},
        ])

        result = await run_backlinks_step(mock_dataforseo, "example.com")

        assert result["totalBacklinks"] == 1000
        assert result["dofollowRatio"] == 0.8
        assert 0 < result["authorityScore"] <= 100
        assert result["topReferringDomains"] == [{"domain": "news.com", "backlinks": 10, "domainRank": 200}]
        assert [a["percentage"] for a in result["anchorDistribution"]] == [75.0, 25.0]
        assert result["anchorDistribution"][1]["anchor"] == ""

    @pytest.mark.asyncio
    async def test_optional_calls_fail(self, mock_dataforseo):
        mock_dataforseo.backlinks.summary = AsyncMock(return_value={"backlinks": 5, "referring_domains": 0})
        mock_dataforseo.backlinks.referring_domains = AsyncMock(side_effect=DataForSEOError("timeout"))
        mock_dataforseo.backlinks.anchors = AsyncMock(side_effect=DataForSEOError("timeout"))

        result = await run_backlinks_step(mock_dataforseo, "example.com")

        assert result["dofollowRatio"] == 0
        assert result["topReferringDomains"] is None
        assert result["anchorDistribution"] is None

    @pytest.mark.asyncio
    async def test_no_summary(self, mock_dataforseo):
        mock_dataforseo.backlinks.summary = AsyncMock(return_value=None)

        result = await run_backlinks_step(mock_dataforseo, "example.com")

        assert result["totalBacklinks"] == 0
        assert result["authorityScore"] == 0


class TestBusinessStep:
    """Tests for the business profile step"""

    @pytest.mark.asyncio
    async def test_prefers_listing_for_domain(self, mock_dataforseo):
        mock_dataforseo.business.business_info = AsyncMock(return_value=[
            {"title": "Example Plumbing Supply", "url": "https://supply.net", "rating": {"value": 3.0}},
            {"title": "Example Plumbing", "url": "https://www.example.com/", "cid": "222",
             "rating": {"value": 4.5, "votes_count": 120}, "category": "Plumber"},
        ])

        result = await run_business_step(mock_dataforseo, "example.com", "Example Plumbing", "Austin, TX")

        mock_dataforseo.business.business_info.assert_awaited_once_with("Example Plumbing Austin, TX")
        assert result["found"]
        assert result["cid"] == "222"
        assert result["reviewCount"] == 120
        assert result["napConsistent"]
        assert "score" in result["completeness"]

    @pytest.mark.asyncio
    async def test_not_found(self, mock_dataforseo):
        mock_dataforseo.business.business_info = AsyncMock(return_value=[])

        result = await run_business_step(mock_dataforseo, "example.com", "Example Plumbing")

        assert result == {"found": False, "searchedFor": "Example Plumbing"}


class TestCompetitorStep:
    """Tests for competitor metrics and discovery"""

    @pytest.fixture
    def dfs(self, mock_dataforseo):
        mock_dataforseo.labs.domain_rank_overview = AsyncMock(return_value={"items": [{"metrics": {"organic": {
            "count": 50, "pos_1": 2, "pos_2_3": 3, "pos_4_10": 5, "etv": 120.5,
        }}}]})
        mock_dataforseo.backlinks.summary = AsyncMock(return_value={
            "rank": 300, "backlinks": 1000, "referring_domains": 100,
        })
        return mock_dataforseo

    @pytest.mark.asyncio
    async def test_discovers_competitors(self, dfs):
        dfs.labs.competitors_domain = AsyncMock(return_value=[
            {"domain": "www.example.com", "intersections": 100},
            {"domain": "rivalplumbing.com", "intersections": 12, "avg_position": 4.2,
             "metrics": {"organic": {"etv": 80}}},
        ])

        result = await run_competitor_step(dfs, "example.com")

        assert result["targetMetrics"]["top10Keywords"] == 10
        assert result["targetMetrics"]["domainRank"] == 300
        assert result["competitors"] == []
        assert result["discoveredCompetitors"] == [
            {"domain": "rivalplumbing.com", "intersections": 12, "avgPosition": 4.2, "etv": 80},
        ]

    @pytest.mark.asyncio
    async def test_given_competitors(self, dfs):
        dfs.labs.competitors_domain = AsyncMock()

        result = await run_competitor_step(dfs, "example.com", ["rivalplumbing.com"])

        assert [c["domain"] for c in result["competitors"]] == ["rivalplumbing.com"]
        assert result["discoveredCompetitors"] is None
        dfs.labs.competitors_domain.assert_not_called()


# ============================================================================
# Audit Job
# ============================================================================

@pytest.fixture
def audit(db, user, domain):
    return audit_ops.create_audit(db, user.id, "https://www.Example.com/", business_name="Example Plumbing")


@pytest.fixture
def steps():
    """Audit steps replaced with canned payloads."""
    with patch("seo_dashboard.jobs.audit.run_onpage_step",
               new=AsyncMock(return_value={"technicalScore": 90})) as onpage, \
            patch("seo_dashboard.jobs.audit.run_serp_step",
                  new=AsyncMock(return_value={"discoveryKeywords": [{"position": 3}]})) as serp, \
            patch("seo_dashboard.jobs.audit.run_backlinks_step",
                  new=AsyncMock(return_value={"authorityScore": 40})) as backlinks, \
            patch("seo_dashboard.jobs.audit.run_competitor_step",
                  new=AsyncMock(return_value={"competitors": []})) as competitors, \
            patch("seo_dashboard.jobs.audit.run_business_step",
                  new=AsyncMock(return_value={"found": True, "completeness": {"score": 70}})) as business:
        yield {
            "onPage": onpage,
            "serp": serp,
            "backlinks": backlinks,
            "competitors": competitors,
            "business": business,
        }


class TestAuditOperations:
    """Tests for audit records"""

    def test_create_links_domain(self, audit, domain):
        assert audit.domain == "example.com"
        assert audit.domain_id == domain.id
        assert audit.status == AuditStatus.PENDING

    def test_recently_audited(self, db, user, audit):
        assert not audit_ops.was_recently_audited(db, user.id, "example.com")
        audit_ops.start_audit(db, audit.id)
        assert audit_ops.was_recently_audited(db, user.id, "www.example.com")

    def test_old_audit_not_recent(self, db, user, audit):
        audit_ops.complete_audit(db, audit.id)
        audit.created_at = datetime.utcnow() - timedelta(hours=2)
        db.commit()
        assert not audit_ops.was_recently_audited(db, user.id, "example.com")

    def test_unlinked_audits_matched_by_domain(self, db, user, domain):
        legacy = Audit(user_id=user.id, domain="example.com", status=AuditStatus.COMPLETED)
        db.add(legacy)
        db.commit()

        page = audit_ops.get_user_audits(db, user.id, domain_id=domain.id)

        assert [a.id for a in page["audits"]] == [legacy.id]
        assert page["totalPages"] == 1

    def test_reset(self, db, audit):
        audit_ops.fail_audit(db, audit.id, "boom", error_category="fatal")
        audit_ops.reset_audit(db, audit)
        assert audit.status == AuditStatus.PENDING
        assert audit.step_results == {}
        assert audit.error_message is None


class TestAuditJob:
    """Tests for the audit orchestrator"""

    @pytest.mark.asyncio
    async def test_completes_with_scores(self, db, audit, steps, mock_dataforseo):
        with patch("seo_dashboard.jobs.audit.create_dataforseo", return_value=mock_dataforseo):
            result = await run_audit({"auditId": audit.id})

        assert result["domain"] == "example.com"
        assert result["warnings"] == []
        mock_dataforseo.close.assert_awaited_once()

        db.expire_all()
        record = audit_ops.get_audit(db, audit.id)
        assert record.status == AuditStatus.COMPLETED
        assert record.progress == 100
        assert record.current_step is None
        assert record.overall_score == 75
        assert record.content_score == 100
        assert set(record.step_results) == {"onPage", "serp", "backlinks", "competitors", "business"}

    @pytest.mark.asyncio
    async def test_failed_step_becomes_warning(self, db, audit, steps, mock_dataforseo):
        steps["onPage"].side_effect = DataForSEOError("Task timed out", status_code=50301)

        with patch("seo_dashboard.jobs.audit.create_dataforseo", return_value=mock_dataforseo):
            result = await run_audit({"auditId": audit.id})

        assert result["warnings"] == ["onPage"]
        steps["business"].assert_awaited_once()

        db.expire_all()
        record = audit_ops.get_audit(db, audit.id)
        assert record.status == AuditStatus.COMPLETED
        assert record.technical_score is None
        assert record.overall_score == 70
        warning = record.step_results["warnings"]["onPage"]
        assert warning["message"] == "Task timed out"
        assert warning["code"] == 50301
        assert "onPage" not in {k for k in record.step_results if k != "warnings"}

    @pytest.mark.asyncio
    async def test_skip_backlinks(self, db, audit, steps, mock_dataforseo):
        with patch("seo_dashboard.jobs.audit.create_dataforseo", return_value=mock_dataforseo):
            await run_audit({"auditId": audit.id, "options": {"includeBacklinks": False}})

        steps["backlinks"].assert_not_called()
        steps["competitors"].assert_not_called()
        db.expire_all()
        assert audit_ops.get_audit(db, audit.id).backlinks_score is None

    @pytest.mark.asyncio
    async def test_business_search_name(self, db, user, steps, mock_dataforseo):
        audit = audit_ops.create_audit(db, user.id, "rivalplumbing.com", city="Austin", state="TX")

        with patch("seo_dashboard.jobs.audit.create_dataforseo", return_value=mock_dataforseo):
            await run_audit({"auditId": audit.id})

        steps["business"].assert_awaited_once_with(mock_dataforseo, "rivalplumbing.com", "rivalplumbing.com", "Austin, TX")

    @pytest.mark.asyncio
    async def test_skip_cache_option(self, db, audit, steps, mock_dataforseo):
        with patch("seo_dashboard.jobs.audit.create_dataforseo", return_value=mock_dataforseo) as factory:
            await run_audit({"auditId": audit.id, "options": {"skipCache": True}})

        factory.assert_called_once_with(use_cache=False)

    @pytest.mark.asyncio
    async def test_client_unavailable(self, db, audit, steps):
        error = DataForSEOError("DataForSEO credentials not configured")
        with patch("seo_dashboard.jobs.audit.create_dataforseo", side_effect=error):
            with pytest.raises(DataForSEOError):
                await run_audit({"auditId": audit.id})

        db.expire_all()
        record = audit_ops.get_audit(db, audit.id)
        assert record.status == AuditStatus.FAILED
        assert record.error_message == "DataForSEO credentials not configured"
        assert "_failureInfo" in record.step_results

    @pytest.mark.asyncio
    async def test_unknown_audit(self, db):
        with pytest.raises(ValueError):
            await run_audit({"auditId": "missing"})
