"""
Keyword Tracking Tests

SERP parsing, run metrics, schedule timing and the tracking job
against an in-memory database with DataForSEO mocked out.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from seo_dashboard.database.models import (
    KeywordTrackingResult, KeywordTrackingRun, RunStatus, ScheduleFrequency,
)
from seo_dashboard.database.operations import keyword_tracking as tracking_ops
from seo_dashboard.database.operations import keywords as keyword_ops
from seo_dashboard.jobs import KEYWORD_TRACKING_REQUESTED
from seo_dashboard.jobs.keyword_tracking import (
    NO_KEYWORDS_MESSAGE,
    calculate_run_metrics,
    parse_serp_rankings,
    run_keyword_tracking,
    trigger_scheduled_keyword_tracking,
)


# =============================================================================
# SERP PARSING
# =============================================================================

class TestParseSerpRankings:
    """Tests for reading a domain's position out of a SERP."""

    def test_finds_domain_ignoring_www(self, organic_items):
        """www. on the SERP domain still matches the tracked domain."""
        parsed = parse_serp_rankings(organic_items, "example.com")
        assert parsed["position"] == 2
        assert parsed["ranking_url"] == "https://www.example.com/services"

    def test_top_domains(self, organic_items):
        parsed = parse_serp_rankings(organic_items, "example.com")
        assert parsed["top_domain"] == "rivalplumbing.com"
        assert [d["domain"] for d in parsed["top_3_domains"]] == [
            "rivalplumbing.com", "www.example.com", "yelp.com",
        ]

    def test_serp_features_exclude_organic(self, organic_items):
        parsed = parse_serp_rankings(organic_items, "example.com")
        assert parsed["serp_features"] == ["local_pack", "featured_snippet"]

    def test_local_pack_entry(self, organic_items):
        parsed = parse_serp_rankings(organic_items, "example.com")
        assert parsed["local_pack"] == {"position": 1, "rating": 4.5, "reviews": 120, "cid": "222"}

    def test_not_ranking(self, organic_items):
        """A domain absent from the SERP has no position or local pack entry."""
        parsed = parse_serp_rankings(organic_items, "missing.com")
        assert parsed["position"] is None
        assert parsed["ranking_url"] is None
        assert parsed["local_pack"] is None

    def test_empty_serp(self):
        parsed = parse_serp_rankings([], "example.com")
        assert parsed["top_domain"] is None
        assert parsed["top_3_domains"] == []
        assert parsed["serp_features"] == []


# =============================================================================
# RUN METRICS
# =============================================================================

class TestRunMetrics:
    """Tests for run summary metrics."""

    def test_metrics(self):
        results = [
            {"position": 2, "previous_position": 5, "position_change": 3},
            {"position": 8, "previous_position": 4, "position_change": -4},
            {"position": 15, "previous_position": 15, "position_change": 0},
            {"position": 40, "previous_position": None, "position_change": None},
            {"position": None, "previous_position": 12, "position_change": None},
        ]
        metrics = calculate_run_metrics(results)

        assert metrics["keywords_tracked"] == 5
        assert metrics["avg_position"] == 16.25
        assert metrics["keywords_in_top_3"] == 1
        assert metrics["keywords_in_top_10"] == 2
        assert metrics["keywords_in_top_100"] == 4
        assert metrics["keywords_not_ranking"] == 1
        assert metrics["keywords_improved"] == 1
        assert metrics["keywords_declined"] == 1
        assert metrics["keywords_unchanged"] == 1
        assert metrics["new_rankings"] == 1
        assert metrics["lost_rankings"] == 1
        assert metrics["api_calls_used"] == 5
        assert metrics["estimated_cost"] == 0.01

    def test_no_positions(self):
        metrics = calculate_run_metrics([{"position": None, "previous_position": None}])
        assert metrics["avg_position"] is None
        assert metrics["keywords_not_ranking"] == 1


class TestPositionChange:
    """Positive change means the keyword moved up."""

    def test_improved(self):
        assert tracking_ops.calculate_position_change(3, 10) == 7

    def test_declined(self):
        assert tracking_ops.calculate_position_change(10, 3) == -7

    def test_missing_side(self):
        assert tracking_ops.calculate_position_change(None, 3) is None
        assert tracking_ops.calculate_position_change(3, None) is None


# =============================================================================
# SCHEDULE TIMING
# =============================================================================

class TestNextRunTime:
    """Tests for schedule next-run calculation. 2024-01-10 is a Wednesday."""

    def test_weekly_next_sunday(self):
        now = datetime(2024, 1, 10, 12, 0)
        assert tracking_ops.calculate_next_run_time("weekly", "06:00", 0, now=now) == datetime(2024, 1, 14, 6, 0)

    def test_weekly_same_day_before_time(self):
        now = datetime(2024, 1, 14, 5, 0)
        assert tracking_ops.calculate_next_run_time("weekly", "06:00", 0, now=now) == datetime(2024, 1, 14, 6, 0)

    def test_weekly_same_day_after_time(self):
        """Once today's slot has passed the run moves a full week out."""
        now = datetime(2024, 1, 14, 7, 0)
        assert tracking_ops.calculate_next_run_time("weekly", "06:00", 0, now=now) == datetime(2024, 1, 21, 6, 0)

    def test_weekly_accepts_enum(self):
        now = datetime(2024, 1, 10, 12, 0)
        result = tracking_ops.calculate_next_run_time(ScheduleFrequency.WEEKLY, "09:30", 3, now=now)
        assert result == datetime(2024, 1, 17, 9, 30)

    def test_biweekly_skips_when_recent_run(self):
        now = datetime(2024, 1, 10, 12, 0)
        last_run = datetime(2024, 1, 7, 6, 0)
        result = tracking_ops.calculate_next_run_time("biweekly", "06:00", 0, last_run_at=last_run, now=now)
        assert result == datetime(2024, 1, 28, 6, 0)

    def test_biweekly_without_history(self):
        now = datetime(2024, 1, 10, 12, 0)
        assert tracking_ops.calculate_next_run_time("biweekly", "06:00", 0, now=now) == datetime(2024, 1, 14, 6, 0)

    def test_monthly_clamps_to_month_end(self):
        now = datetime(2024, 2, 10, 12, 0)
        result = tracking_ops.calculate_next_run_time("monthly", "06:00", day_of_month=31, now=now)
        assert result == datetime(2024, 2, 29, 6, 0)

    def test_monthly_rolls_over_year(self):
        now = datetime(2024, 12, 20, 12, 0)
        result = tracking_ops.calculate_next_run_time("monthly", "06:00", day_of_month=5, now=now)
        assert result == datetime(2025, 1, 5, 6, 0)

    def test_invalid_time_falls_back(self):
        now = datetime(2024, 1, 10, 12, 0)
        result = tracking_ops.calculate_next_run_time("weekly", "soon", 0, now=now)
        assert (result.hour, result.minute) == (6, 0)


class TestSchedules:
    """Tests for schedule persistence."""

    def test_create_sets_next_run(self, db, user, domain):
        schedule = tracking_ops.create_schedule(db, domain.id, user.id, frequency=ScheduleFrequency.WEEKLY)
        assert schedule.next_run_at > datetime.utcnow()

    def test_timing_change_recalculates(self, db, user, domain):
        schedule = tracking_ops.create_schedule(db, domain.id, user.id, frequency=ScheduleFrequency.WEEKLY)
        schedule.next_run_at = datetime(2000, 1, 1)
        db.commit()

        tracking_ops.update_schedule(db, schedule, time_of_day="09:15")
        assert schedule.next_run_at > datetime.utcnow()
        assert (schedule.next_run_at.hour, schedule.next_run_at.minute) == (9, 15)

    def test_non_timing_change_keeps_next_run(self, db, user, domain):
        schedule = tracking_ops.create_schedule(db, domain.id, user.id)
        fixed = datetime(2030, 1, 1, 6, 0)
        schedule.next_run_at = fixed
        db.commit()

        tracking_ops.update_schedule(db, schedule, is_enabled=False)
        assert schedule.next_run_at == fixed
        assert schedule.is_enabled is False

    def test_due_schedules(self, db, user, domain):
        schedule = tracking_ops.create_schedule(db, domain.id, user.id)
        assert tracking_ops.get_schedules_due(db) == []

        schedule.next_run_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()
        assert [s.id for s in tracking_ops.get_schedules_due(db)] == [schedule.id]

    def test_disabled_schedule_never_due(self, db, user, domain):
        schedule = tracking_ops.create_schedule(db, domain.id, user.id, is_enabled=False)
        schedule.next_run_at = datetime.utcnow() - timedelta(days=1)
        db.commit()
        assert tracking_ops.get_schedules_due(db) == []


# =============================================================================
# RESULTS QUERY
# =============================================================================

class TestRunResults:
    """Tests for filtered run results."""

    @pytest.fixture
    def completed_run(self, db, user, domain):
        run = tracking_ops.create_run(db, domain.id, user.id)
        tracking_ops.save_keyword_results(db, run.id, [
            {"keyword": "plumber austin", "position": 2, "previous_position": 4, "position_change": 2},
            {"keyword": "water heater repair", "position": 14, "previous_position": 9, "position_change": -5},
            {"keyword": "drain cleaning", "position": None, "previous_position": 30, "position_change": None},
            {"keyword": "emergency plumber", "position": 7, "previous_position": None, "position_change": None},
        ])
        tracking_ops.complete_run(db, run.id, {"keywords_tracked": 4})
        return run

    def test_sorted_by_keyword(self, db, completed_run):
        data = tracking_ops.get_run_results(db, completed_run.id, sort_by="keyword")
        assert data["total"] == 4
        assert [r["keyword"] for r in data["results"]] == [
            "drain cleaning", "emergency plumber", "plumber austin", "water heater repair",
        ]

    def test_top10_filter(self, db, completed_run):
        data = tracking_ops.get_run_results(db, completed_run.id, position_filter="top10")
        assert {r["keyword"] for r in data["results"]} == {"plumber austin", "emergency plumber"}

    def test_change_filters(self, db, completed_run):
        assert tracking_ops.get_run_results(db, completed_run.id, change_filter="declined")["total"] == 1
        assert tracking_ops.get_run_results(db, completed_run.id, change_filter="new")["total"] == 1
        lost = tracking_ops.get_run_results(db, completed_run.id, change_filter="lost")
        assert [r["keyword"] for r in lost["results"]] == ["drain cleaning"]

    def test_period_changes_present(self, db, completed_run):
        row = tracking_ops.get_run_results(db, completed_run.id)["results"][0]
        assert {"change7d", "change30d", "change90d"} <= set(row)


# =============================================================================
# TRACKING JOB
# =============================================================================

class TestKeywordTrackingJob:
    """Tests for the keyword-tracking/run.requested job."""

    @pytest.mark.asyncio
    async def test_completes_run(self, db, user, domain, mock_dataforseo, organic_items, make_response):
        keyword_ops.add_keywords(
            db, user.id, domain.id, ["plumber austin", "drain cleaning"],
            metrics={
                "plumber austin": {"search_volume": 1900, "cpc": 12.5},
                "drain cleaning": {"search_volume": 880},
            },
        )
        run = tracking_ops.create_run(db, domain.id, user.id)
        mock_dataforseo.serp.google_organic_raw = AsyncMock(return_value=make_response({"items": organic_items}))

        with patch("seo_dashboard.jobs.keyword_tracking.create_dataforseo", return_value=mock_dataforseo):
            result = await run_keyword_tracking({"runId": run.id, "domainId": domain.id})

        assert result["keywordsTracked"] == 2
        db.expire_all()
        stored = db.query(KeywordTrackingRun).filter(KeywordTrackingRun.id == run.id).one()
        assert stored.status == RunStatus.COMPLETED
        assert stored.progress == 100
        assert stored.avg_position == 2
        assert stored.keywords_in_top_3 == 2

        rows = db.query(KeywordTrackingResult).filter(KeywordTrackingResult.run_id == run.id).all()
        assert {r.keyword for r in rows} == {"plumber austin", "drain cleaning"}
        assert all(r.local_pack_position == 1 for r in rows)
        mock_dataforseo.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_compares_with_previous_run(self, db, user, domain, mock_dataforseo, organic_items, make_response):
        added = keyword_ops.add_keywords(
            db, user.id, domain.id, ["plumber austin"], metrics={"plumber austin": {"search_volume": 1900}}
        )
        keyword_id = added["keywords"][0].id

        previous = tracking_ops.create_run(db, domain.id, user.id)
        tracking_ops.save_keyword_results(db, previous.id, [
            {"tracked_keyword_id": keyword_id, "keyword": "plumber austin", "position": 6},
        ])
        tracking_ops.complete_run(db, previous.id, {})

        run = tracking_ops.create_run(db, domain.id, user.id)
        mock_dataforseo.serp.google_organic_raw = AsyncMock(return_value=make_response({"items": organic_items}))

        with patch("seo_dashboard.jobs.keyword_tracking.create_dataforseo", return_value=mock_dataforseo):
            await run_keyword_tracking({"runId": run.id, "domainId": domain.id})

        db.expire_all()
        row = db.query(KeywordTrackingResult).filter(KeywordTrackingResult.run_id == run.id).one()
        assert row.previous_position == 6
        assert row.position_change == 4

    @pytest.mark.asyncio
    async def test_serp_failure_records_unranked(self, db, user, domain, mock_dataforseo):
        """A failed lookup for one keyword does not fail the run."""
        keyword_ops.add_keywords(
            db, user.id, domain.id, ["plumber austin"], metrics={"plumber austin": {"search_volume": 1900}}
        )
        run = tracking_ops.create_run(db, domain.id, user.id)
        mock_dataforseo.serp.google_organic_raw = AsyncMock(side_effect=RuntimeError("timeout"))

        with patch("seo_dashboard.jobs.keyword_tracking.create_dataforseo", return_value=mock_dataforseo):
            await run_keyword_tracking({"runId": run.id, "domainId": domain.id})

        db.expire_all()
        stored = db.query(KeywordTrackingRun).filter(KeywordTrackingRun.id == run.id).one()
        assert stored.status == RunStatus.COMPLETED
        assert stored.keywords_not_ranking == 1

    @pytest.mark.asyncio
    async def test_no_keywords_fails_run(self, db, user, domain):
        run = tracking_ops.create_run(db, domain.id, user.id)

        with pytest.raises(ValueError, match="No tracked keywords"):
            await run_keyword_tracking({"runId": run.id, "domainId": domain.id})

        db.expire_all()
        stored = db.query(KeywordTrackingRun).filter(KeywordTrackingRun.id == run.id).one()
        assert stored.status == RunStatus.FAILED
        assert stored.error_message == NO_KEYWORDS_MESSAGE


class TestScheduledTracking:
    """Tests for the hourly schedule trigger."""

    @pytest.mark.asyncio
    async def test_triggers_due_schedule(self, db, user, domain):
        schedule = tracking_ops.create_schedule(db, domain.id, user.id)
        schedule.next_run_at = datetime.utcnow() - timedelta(minutes=5)
        db.commit()

        send = MagicMock(return_value=[])
        with patch("seo_dashboard.jobs.keyword_tracking.bus.send", send):
            result = await trigger_scheduled_keyword_tracking()

        assert result["triggered"] == 1
        run_id = result["runs"][0]["runId"]
        send.assert_called_once_with(KEYWORD_TRACKING_REQUESTED, {"runId": run_id, "domainId": domain.id})

        db.expire_all()
        run = db.query(KeywordTrackingRun).filter(KeywordTrackingRun.id == run_id).one()
        assert run.triggered_by == "scheduled"
        refreshed = tracking_ops.get_schedule_for_domain(db, domain.id)
        assert refreshed.last_run_id == run_id
        assert refreshed.next_run_at > datetime.utcnow()

    @pytest.mark.asyncio
    async def test_nothing_due(self, db, user, domain):
        tracking_ops.create_schedule(db, domain.id, user.id)
        with patch("seo_dashboard.jobs.keyword_tracking.bus.send") as send:
            result = await trigger_scheduled_keyword_tracking()
        assert result["triggered"] == 0
        send.assert_not_called()
