"""
API route tests.

Routes run against the in-memory database with auth overridden and
background jobs stubbed by the `client` fixture.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock, AsyncMock, patch

from seo_dashboard.database.models import (
    AiSeoRun,
    Audit,
    AuditStatus,
    KeywordOptimizationAudit,
    LocalCampaign,
    TrackedKeyword,
)
from seo_dashboard.database.operations import audits as audit_ops
from seo_dashboard.database.operations import keywords as keyword_ops
from seo_dashboard.dataforseo.errors import DataForSEOError
from seo_dashboard.jobs import (
    AI_SEO_ANALYSIS_START,
    AUDIT_REQUESTED,
    KEYWORD_TRACKING_REQUESTED,
    LOCAL_SCAN_REQUESTED,
)
from seo_dashboard.seo.keyword_optimization import KeywordOptimizationData


CAMPAIGN_BODY = {
    "businessName": "Example Plumbing",
    "centerLat": 30.2672,
    "centerLng": -97.7431,
    "gridSize": 3,
    "gridRadiusMiles": 2,
    "keywords": ["plumber"],
}


# ============================================================================
# Envelope
# ============================================================================

class TestEnvelope:
    """Tests for the success/error envelope."""

    def test_unknown_route(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Not Found", "code": "NOT_FOUND"}

    def test_validation_error(self, client):
        response = client.post("/api/domains", json={})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"][0]["field"] == "domain"

    def test_health(self, client):
        cache = MagicMock()
        cache.is_enabled.return_value = False

        with patch("api.app.check_db_connection", return_value=True), \
                patch("api.app.get_cache", return_value=cache):
            response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["cache"] == "disabled"
        assert data["schedulerRunning"] is False


# ============================================================================
# Domains
# ============================================================================

class TestDomainRoutes:
    """Tests for /api/domains."""

    def test_create_normalizes_domain(self, client):
        response = client.post("/api/domains", json={"domain": "https://www.Acme-Dental.com/about"})

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["domain"] == "acme-dental.com"
        assert data["name"] == "acme-dental.com"
        assert data["status"] == "ACTIVE"

    def test_create_duplicate(self, client, domain):
        response = client.post("/api/domains", json={"domain": "example.com"})

        assert response.status_code == 400
        assert response.json()["code"] == "DOMAIN_EXISTS"

    def test_create_invalid(self, client):
        response = client.post("/api/domains", json={"domain": "not a domain"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid domain format"

    def test_list_and_get(self, client, domain):
        listed = client.get("/api/domains").json()["data"]
        detail = client.get(f"/api/domains/{domain.id}").json()["data"]

        assert [d["id"] for d in listed] == [domain.id]
        assert detail["counts"]["audits"] == 0
        assert detail["counts"]["trackedKeywords"] == 0

    def test_missing_domain(self, client):
        response = client.get("/api/domains/missing-id")

        assert response.status_code == 404
        assert response.json()["error"] == "Domain not found"

    def test_update(self, client, domain):
        response = client.patch(f"/api/domains/{domain.id}", json={"isPinned": True, "city": "Round Rock"})

        data = response.json()["data"]
        assert data["isPinned"] is True
        assert data["city"] == "Round Rock"
        assert data["businessName"] == "Example Plumbing"

    def test_archive_then_recreate(self, client, domain):
        assert client.delete(f"/api/domains/{domain.id}").json()["data"]["archived"] is True
        assert client.get("/api/domains").json()["data"] == []

        response = client.post("/api/domains", json={"domain": "example.com", "name": "Back again"})

        assert response.status_code == 201
        assert response.json()["data"]["id"] == domain.id


# ============================================================================
# Keyword Library
# ============================================================================

class TestKeywordRoutes:
    """Tests for /api/keywords."""

    def test_add_without_enrichment(self, client, domain):
        response = client.post("/api/keywords", json={
            "domainId": domain.id,
            "keywords": ["Plumber  Austin", "plumber austin", "water heater repair"],
            "enrich": False,
        })

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["added"] == 2
        assert [k["keyword"] for k in data["keywords"]] == ["plumber austin", "water heater repair"]

    def test_add_preset(self, client, domain):
        response = client.post("/api/keywords", json={
            "domainId": domain.id,
            "preset": {"city": "Austin", "state": "TX"},
            "enrich": False,
        })

        data = response.json()["data"]
        assert data["added"] > 10
        assert all(k["category"] == "preset" for k in data["keywords"])

    def test_unknown_preset_state(self, client, domain):
        response = client.post("/api/keywords", json={
            "domainId": domain.id,
            "preset": {"city": "Austin", "state": "ZZ"},
            "enrich": False,
        })

        assert response.status_code == 400

    def test_empty_keywords(self, client, domain):
        response = client.post("/api/keywords", json={"domainId": domain.id, "keywords": ["  "], "enrich": False})

        assert response.status_code == 400
        assert response.json()["error"] == "At least one keyword is required"

    def test_enrichment_unavailable_still_adds(self, client, domain):
        with patch("api.keywords.create_dataforseo", side_effect=DataForSEOError("not configured")):
            response = client.post("/api/keywords", json={"domainId": domain.id, "keywords": ["plumber"]})

        assert response.status_code == 201
        assert response.json()["data"]["keywords"][0]["searchVolume"] is None

    def test_enrichment_sets_volume(self, client, domain, mock_dataforseo):
        mock_dataforseo.keywords.search_volume = AsyncMock(return_value=[
            {"keyword": "plumber", "search_volume": 5400, "cpc": 18.2},
        ])
        mock_dataforseo.labs = MagicMock()

        with patch("api.keywords.create_dataforseo", return_value=mock_dataforseo), \
                patch("api.keywords.enrich_keywords_with_historical_data", new=AsyncMock()):
            response = client.post("/api/keywords", json={"domainId": domain.id, "keywords": ["plumber"]})

        keyword = response.json()["data"]["keywords"][0]
        assert keyword["searchVolume"] == 5400
        assert keyword["volumeSource"] == "current"
        mock_dataforseo.close.assert_awaited_once()

    def test_list_update_delete(self, client, db, user, domain):
        keyword_ops.add_keywords(db, user.id, domain.id, ["plumber", "drain cleaning"])
        keyword_id = db.query(TrackedKeyword).filter(TrackedKeyword.keyword == "plumber").first().id

        client.patch(f"/api/keywords/{keyword_id}", json={"isActive": False})
        active = client.get("/api/keywords", params={"domainId": domain.id}).json()["data"]
        everything = client.get(
            "/api/keywords", params={"domainId": domain.id, "includeInactive": True}
        ).json()["data"]

        assert active["total"] == 1
        assert everything["total"] == 2
        assert client.delete(f"/api/keywords/{keyword_id}").status_code == 200
        assert client.delete(f"/api/keywords/{keyword_id}").status_code == 404


# ============================================================================
# Audits
# ============================================================================

class TestAuditRoutes:
    """Tests for /api/audits."""

    def test_create_queues_job(self, client, db, domain, mock_bus_run):
        response = client.post("/api/audits", json={
            "domain": "https://www.example.com/",
            "city": "Austin",
            "state": "TX",
        })

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["domain"] == "example.com"
        assert data["status"] == "PENDING"

        event, payload = mock_bus_run.call_args.args
        assert event == AUDIT_REQUESTED
        assert payload["auditId"] == data["auditId"]
        assert payload["options"] == {"skipCache": False, "includeBacklinks": True, "includeBusinessData": True}

        audit = db.query(Audit).filter(Audit.id == data["auditId"]).first()
        assert audit.domain_id == domain.id
        assert db.query(TrackedKeyword).filter(TrackedKeyword.domain_id == domain.id).count() > 0

    def test_recent_audit_rate_limited(self, client, db, user):
        audit = audit_ops.create_audit(db, user.id, "example.com")
        audit.status = AuditStatus.COMPLETED
        db.commit()

        response = client.post("/api/audits", json={"domain": "example.com"})

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMITED"

    def test_invalid_domain(self, client):
        response = client.post("/api/audits", json={"domain": "nope"})

        assert response.status_code == 400

    def test_other_users_audit_forbidden(self, client, db, other_user):
        audit = audit_ops.create_audit(db, other_user.id, "rival.com")

        response = client.get(f"/api/audits/{audit.id}")

        assert response.status_code == 403

    def test_status_and_result(self, client, db, user):
        audit = audit_ops.create_audit(db, user.id, "example.com")
        audit.status = AuditStatus.CRAWLING
        audit.progress = 50
        audit.current_step = "onpage_crawl"
        audit.started_at = datetime.utcnow() - timedelta(seconds=60)
        db.commit()

        status = client.get(f"/api/audits/{audit.id}/status").json()["data"]
        result = client.get(f"/api/audits/{audit.id}").json()["data"]

        assert status["isInProgress"] is True
        assert status["currentStepDescription"] == "Analyzing technical SEO and page performance"
        assert 50 <= status["estimatedSecondsRemaining"] <= 70
        assert result["domain"] == "example.com"
        assert result["scores"]["overall"] is None

    def test_list_paginates(self, client, db, user):
        for name in ("a.com", "b.com", "c.com"):
            audit_ops.create_audit(db, user.id, name)

        body = client.get("/api/audits", params={"limit": 2}).json()

        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}

    def test_retry_requires_failed(self, client, db, user, mock_bus_run):
        audit = audit_ops.create_audit(db, user.id, "example.com")

        response = client.post(f"/api/audits/{audit.id}/retry")

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATUS"
        mock_bus_run.assert_not_called()

    def test_retry_failed(self, client, db, user, mock_bus_run):
        audit = audit_ops.create_audit(db, user.id, "example.com")
        audit.status = AuditStatus.FAILED
        audit.error_message = "boom"
        db.commit()

        response = client.post(f"/api/audits/{audit.id}/retry")

        assert response.json()["data"]["status"] == "PENDING"
        event, payload = mock_bus_run.call_args.args
        assert event == AUDIT_REQUESTED
        assert payload["options"]["skipCache"] is True

    def test_delete(self, client, db, user):
        audit = audit_ops.create_audit(db, user.id, "example.com")

        assert client.delete(f"/api/audits/{audit.id}").status_code == 200
        assert client.get(f"/api/audits/{audit.id}").status_code == 404


# ============================================================================
# Keyword Tracking
# ============================================================================

class TestKeywordTrackingRoutes:
    """Tests for /api/keyword-tracking."""

    def test_start_requires_keywords(self, client, domain, mock_bus_run):
        response = client.post("/api/keyword-tracking", json={"domainId": domain.id})

        assert response.status_code == 400
        mock_bus_run.assert_not_called()

    def test_start_queues_run(self, client, db, user, domain, mock_bus_run):
        keyword_ops.add_keywords(db, user.id, domain.id, ["plumber"])

        response = client.post("/api/keyword-tracking", json={"domainId": domain.id})

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "PENDING"
        mock_bus_run.assert_called_once_with(
            KEYWORD_TRACKING_REQUESTED, {"runId": data["runId"], "domainId": domain.id}
        )

        status = client.get(f"/api/keyword-tracking/runs/{data['runId']}/status").json()["data"]
        assert status["isInProgress"] is True

    def test_schedule_upsert(self, client, domain):
        created = client.put(
            "/api/keyword-tracking/schedule",
            params={"domainId": domain.id},
            json={"frequency": "monthly", "dayOfMonth": 15, "timeOfDay": "07:30"},
        )
        updated = client.put(
            "/api/keyword-tracking/schedule",
            params={"domainId": domain.id},
            json={"frequency": "weekly", "dayOfWeek": 1},
        )

        assert created.status_code == 200
        assert created.json()["data"]["id"] == updated.json()["data"]["id"]
        assert updated.json()["data"]["frequency"] == "weekly"

    def test_schedule_rejects_bad_time(self, client, domain):
        response = client.put(
            "/api/keyword-tracking/schedule",
            params={"domainId": domain.id},
            json={"timeOfDay": "25:00"},
        )

        assert response.status_code == 400

    def test_delete_missing_schedule(self, client, domain):
        response = client.delete("/api/keyword-tracking/schedule", params={"domainId": domain.id})

        assert response.status_code == 404


# ============================================================================
# Local SEO
# ============================================================================

class TestLocalSeoRoutes:
    """Tests for /api/local-seo/campaigns."""

    def test_create_triggers_scan(self, client, mock_bus_run):
        response = client.post("/api/local-seo/campaigns", json=CAMPAIGN_BODY)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["gridPointCount"] == 9
        assert data["estimatedCostPerScan"] == pytest.approx(0.045)
        assert data["initialScanTriggered"] is True
        assert data["scanFrequency"] == "weekly"
        event, payload = mock_bus_run.call_args.args
        assert event == LOCAL_SCAN_REQUESTED
        assert payload["campaignId"] == data["id"]

    def test_create_without_scan(self, client, mock_bus_run):
        response = client.post("/api/local-seo/campaigns", json={**CAMPAIGN_BODY, "triggerInitialScan": False})

        assert response.json()["data"]["initialScanTriggered"] is False
        mock_bus_run.assert_not_called()

    @pytest.mark.parametrize("override", [
        {"gridSize": 2},
        {"gridRadiusMiles": 30},
        {"keywords": []},
        {"keywords": ["x" * 101]},
        {"centerLat": 91},
    ])
    def test_create_validation(self, client, override):
        response = client.post("/api/local-seo/campaigns", json={**CAMPAIGN_BODY, **override})

        assert response.status_code == 400

    def test_trigger_scan(self, client, mock_bus_run):
        campaign_id = client.post(
            "/api/local-seo/campaigns", json={**CAMPAIGN_BODY, "triggerInitialScan": False}
        ).json()["data"]["id"]

        response = client.post(f"/api/local-seo/campaigns/{campaign_id}/scan")

        assert response.status_code == 202
        assert response.json()["data"]["totalCalls"] == 9
        mock_bus_run.assert_called_once()

    def test_paused_campaign_cannot_scan(self, client, mock_bus_run):
        campaign_id = client.post(
            "/api/local-seo/campaigns", json={**CAMPAIGN_BODY, "triggerInitialScan": False}
        ).json()["data"]["id"]
        client.patch(f"/api/local-seo/campaigns/{campaign_id}", json={"status": "PAUSED"})

        response = client.post(f"/api/local-seo/campaigns/{campaign_id}/scan")

        assert response.status_code == 400
        assert response.json()["error"] == "Campaign is not active"

    def test_competitors_without_scan(self, client):
        campaign_id = client.post(
            "/api/local-seo/campaigns", json={**CAMPAIGN_BODY, "triggerInitialScan": False}
        ).json()["data"]["id"]

        data = client.get(f"/api/local-seo/campaigns/{campaign_id}/competitors").json()["data"]

        assert data["hasCompletedScan"] is False
        assert data["competitors"] == []

    def test_other_users_campaign_not_found(self, client, db, other_user):
        campaign = LocalCampaign(
            user_id=other_user.id,
            business_name="Rival",
            center_lat=30.0,
            center_lng=-97.0,
            keywords=["plumber"],
        )
        db.add(campaign)
        db.commit()

        assert client.get(f"/api/local-seo/campaigns/{campaign.id}").status_code == 404

    def test_list_and_delete(self, client):
        campaign_id = client.post(
            "/api/local-seo/campaigns", json={**CAMPAIGN_BODY, "triggerInitialScan": False}
        ).json()["data"]["id"]

        listed = client.get("/api/local-seo/campaigns").json()["data"]
        assert [c["id"] for c in listed] == [campaign_id]
        assert listed[0]["latestScan"] is None

        assert client.delete(f"/api/local-seo/campaigns/{campaign_id}").status_code == 200
        assert client.get("/api/local-seo/campaigns").json()["data"] == []


# ============================================================================
# AI-SEO
# ============================================================================

class TestAiSeoRoutes:
    """Tests for /api/ai-seo."""

    def test_unsupported_platforms(self, client, domain, mock_bus_run):
        response = client.post("/api/ai-seo", json={
            "domainId": domain.id,
            "businessName": "Example Plumbing",
            "keywords": ["plumber austin"],
            "llmPlatforms": ["perplexity", "gemini"],
        })

        assert response.status_code == 400
        assert "supported LLM platform" in response.json()["error"]
        mock_bus_run.assert_not_called()

    def test_start_normalizes_platforms(self, client, db, domain, mock_bus_run):
        response = client.post("/api/ai-seo", json={
            "domainId": domain.id,
            "businessName": " Example Plumbing ",
            "keywords": ["plumber austin", " "],
            "llmPlatforms": ["ChatGPT", "google", "chat_gpt", "perplexity"],
        })

        assert response.status_code == 201
        run_id = response.json()["data"]["id"]
        run = db.query(AiSeoRun).filter(AiSeoRun.id == run_id).first()
        assert run.llm_platforms == ["chat_gpt", "google"]
        assert run.keywords == ["plumber austin"]
        assert run.business_name == "Example Plumbing"
        mock_bus_run.assert_called_once_with(AI_SEO_ANALYSIS_START, {"runId": run_id})

    def test_list_without_completed_run(self, client, domain):
        data = client.get("/api/ai-seo", params={"domainId": domain.id}).json()["data"]

        assert data["runs"] == []
        assert data["latestVisibilityScore"] is None

    def test_missing_run(self, client):
        assert client.get("/api/ai-seo/missing").status_code == 404


# ============================================================================
# Keyword Optimization
# ============================================================================

class TestSeoAuditRoutes:
    """Tests for /api/seo-audit/analyze."""

    @pytest.fixture
    def report(self):
        return {
            "scores": {"overall": 64, "title": 6, "meta": 5, "headings": 7, "content": 6, "internalLinks": 4},
            "executiveSummary": {"currentPosition": 2},
            "markdownReport": "# Keyword Optimization Audit Report",
            "generatedBy": "default",
        }

    def test_analyze_completes(self, client, db, mock_dataforseo, report):
        data = KeywordOptimizationData(target_keyword="plumber austin", domain="example.com")
        data.current_position = 2
        data.api_cost = 0.075

        with patch("api.seo_audit.create_dataforseo", return_value=mock_dataforseo), \
                patch("api.seo_audit.gather_keyword_optimization_data", new=AsyncMock(return_value=data)), \
                patch("api.seo_audit.generate_seo_report", new=AsyncMock(return_value=report)):
            response = client.post("/api/seo-audit/analyze", json={
                "url": "example.com/services",
                "targetKeyword": " plumber austin ",
            })

        assert response.status_code == 201
        body = response.json()["data"]
        assert body["status"] == "COMPLETED"
        assert body["scores"]["overall"] == 64
        assert body["apiCost"] == 0.075

        audit = db.query(KeywordOptimizationAudit).filter(KeywordOptimizationAudit.id == body["auditId"]).first()
        assert audit.url == "https://example.com/services"
        assert audit.target_keyword == "plumber austin"
        assert audit.current_position == 2
        assert audit.report_markdown == "# Keyword Optimization Audit Report"

        detail = client.get(f"/api/seo-audit/analyze/{body['auditId']}").json()["data"]
        assert detail["status"] == "COMPLETED"

    def test_analyze_failure_marks_failed(self, client, db):
        with patch("api.seo_audit.create_dataforseo", side_effect=DataForSEOError("credentials not configured")):
            response = client.post("/api/seo-audit/analyze", json={
                "url": "https://example.com/",
                "targetKeyword": "plumber austin",
            })

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["details"] == "credentials not configured"

        audit = db.query(KeywordOptimizationAudit).filter(KeywordOptimizationAudit.id == body["auditId"]).first()
        assert audit.status.value == "FAILED"


# ============================================================================
# Archive and Dashboard
# ============================================================================

class TestArchiveRoutes:
    """Tests for /api/archive."""

    def test_unassigned_then_archived(self, client, db, user):
        audit = audit_ops.create_audit(db, user.id, "orphan.com")

        unassigned = client.get("/api/archive").json()["data"]["unassigned"]
        assert [a["id"] for a in unassigned["audits"]] == [audit.id]

        response = client.post("/api/archive", json={"action": "archive", "type": "audits", "ids": [audit.id]})
        assert response.json()["data"]["count"] == 1

        archive = client.get("/api/archive").json()["data"]
        assert archive["unassigned"]["totalCount"] == 0
        assert [a["id"] for a in archive["archived"]["audits"]] == [audit.id]

        deleted = client.post("/api/archive", json={"action": "delete", "type": "audits", "ids": [audit.id]})
        assert deleted.json()["data"]["count"] == 1

    def test_assign(self, client, db, user, domain):
        audit = audit_ops.create_audit(db, user.id, "orphan.com")

        response = client.post("/api/archive", json={
            "action": "assign", "type": "audits", "ids": [audit.id], "domainId": domain.id,
        })

        assert response.json()["data"]["count"] == 1
        db.expire_all()
        assert db.query(Audit).filter(Audit.id == audit.id).first().domain_id == domain.id

    def test_assign_requires_domain(self, client, db, user):
        audit = audit_ops.create_audit(db, user.id, "orphan.com")

        response = client.post("/api/archive", json={"action": "assign", "type": "audits", "ids": [audit.id]})

        assert response.status_code == 400


class TestDashboardRoutes:
    """Tests for /api/dashboard/stats."""

    def test_stats(self, client, db, user, domain):
        keyword_ops.add_keywords(db, user.id, domain.id, ["plumber"])
        audit = audit_ops.create_audit(db, user.id, "example.com")
        audit.status = AuditStatus.COMPLETED
        audit.completed_at = datetime.utcnow()
        db.commit()

        data = client.get("/api/dashboard/stats").json()["data"]

        assert data["totalDomains"] == 1
        assert data["trackedKeywords"] == 1
        assert data["totalAudits"] == 1
        assert data["completedAudits"] == 1
        assert data["localCampaigns"] == 0
        assert data["recentAudits"][0]["id"] == audit.id
