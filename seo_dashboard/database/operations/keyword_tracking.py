"""
Keyword tracking operations

Runs, per-keyword results and recurring schedules for rank tracking.
All timestamps are naive UTC.
"""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models import (
    KeywordTrackingResult, KeywordTrackingRun, KeywordTrackingSchedule,
    RunStatus, ScheduleFrequency,
)

logger = logging.getLogger(__name__)

# (offset days, search window days) for historical comparisons
HISTORY_WINDOWS = {
    "7d": (7, 3),
    "30d": (30, 7),
    "90d": (90, 14),
}

SORT_COLUMNS = {
    "position": KeywordTrackingResult.position,
    "positionChange": KeywordTrackingResult.position_change,
    "keyword": KeywordTrackingResult.keyword,
    "searchVolume": KeywordTrackingResult.search_volume,
}

SCHEDULE_TIMING_FIELDS = ("frequency", "day_of_week", "day_of_month", "time_of_day")


# =============================================================================
# RUNS
# =============================================================================

def create_run(
    db: Session,
    domain_id: str,
    user_id: str,
    location_name: str = "United States",
    language_code: str = "en",
    triggered_by: str = "manual",
) -> KeywordTrackingRun:
    run = KeywordTrackingRun(
        domain_id=domain_id,
        user_id=user_id,
        status=RunStatus.PENDING,
        location_name=location_name,
        language_code=language_code,
        triggered_by=triggered_by,
        progress=0,
    )
    db.add(run)
    db.commit()
    logger.info(f"Created keyword tracking run {run.id} ({triggered_by})")
    return run


def get_run(db: Session, run_id: str) -> Optional[KeywordTrackingRun]:
    return db.query(KeywordTrackingRun).filter(KeywordTrackingRun.id == run_id).first()


def get_run_for_user(db: Session, run_id: str, user_id: str) -> Optional[KeywordTrackingRun]:
    return (
        db.query(KeywordTrackingRun)
        .filter(KeywordTrackingRun.id == run_id, KeywordTrackingRun.user_id == user_id)
        .first()
    )


def list_domain_runs(db: Session, domain_id: str, limit: int = 20, offset: int = 0) -> Dict[str, Any]:
    query = db.query(KeywordTrackingRun).filter(KeywordTrackingRun.domain_id == domain_id)
    total = query.count()
    runs = query.order_by(KeywordTrackingRun.created_at.desc()).offset(offset).limit(limit).all()
    return {"runs": runs, "total": total}


def update_run_status(db: Session, run_id: str, status: RunStatus) -> None:
    run = get_run(db, run_id)
    if run is None:
        return
    run.status = status
    if status == RunStatus.RUNNING:
        run.started_at = datetime.utcnow()
    db.commit()


def update_run_progress(db: Session, run_id: str, progress: int) -> None:
    run = get_run(db, run_id)
    if run is None:
        return
    run.progress = min(100, progress)
    db.commit()


def complete_run(db: Session, run_id: str, metrics: Dict[str, Any]) -> None:
    """Store summary metrics and mark COMPLETED."""
    run = get_run(db, run_id)
    if run is None:
        return
    for key, value in metrics.items():
        if hasattr(run, key):
            setattr(run, key, value)
    run.status = RunStatus.COMPLETED
    run.progress = 100
    run.completed_at = datetime.utcnow()
    db.commit()


def fail_run(db: Session, run_id: str, error_message: str) -> None:
    run = get_run(db, run_id)
    if run is None:
        return
    run.status = RunStatus.FAILED
    run.error_message = error_message
    run.completed_at = datetime.utcnow()
    db.commit()
    logger.error(f"Keyword tracking run {run_id} failed: {error_message}")


def delete_run(db: Session, run: KeywordTrackingRun) -> None:
    db.delete(run)
    db.commit()


# =============================================================================
# RESULTS
# =============================================================================

def save_keyword_results(db: Session, run_id: str, results: List[Dict[str, Any]]) -> int:
    """Bulk insert result rows. Keys are KeywordTrackingResult column names."""
    for row in results:
        db.add(KeywordTrackingResult(run_id=run_id, **row))
    db.commit()
    return len(results)


def get_previous_run(db: Session, domain_id: str, exclude_run_id: str) -> Optional[KeywordTrackingRun]:
    return (
        db.query(KeywordTrackingRun)
        .filter(
            KeywordTrackingRun.domain_id == domain_id,
            KeywordTrackingRun.id != exclude_run_id,
            KeywordTrackingRun.status == RunStatus.COMPLETED,
        )
        .order_by(KeywordTrackingRun.created_at.desc())
        .first()
    )


def get_previous_results(db: Session, run_id: str) -> Dict[str, Optional[int]]:
    """tracked_keyword_id -> position for a completed run."""
    rows = (
        db.query(KeywordTrackingResult.tracked_keyword_id, KeywordTrackingResult.position)
        .filter(KeywordTrackingResult.run_id == run_id)
        .all()
    )
    return {kid: position for kid, position in rows if kid}


def get_historical_positions(db: Session, domain_id: str, run_date: datetime) -> Dict[str, Dict[str, Optional[int]]]:
    """
    Positions from the completed runs closest to 7, 30 and 90 days before run_date.

    Each period looks for the latest completed run inside a window around
    its offset (+-3, +-7 and +-14 days). Returns period -> {tracked_keyword_id: position}.
    """
    periods: Dict[str, Dict[str, Optional[int]]] = {}

    for period, (offset_days, window_days) in HISTORY_WINDOWS.items():
        target = run_date - timedelta(days=offset_days)
        run = (
            db.query(KeywordTrackingRun)
            .filter(
                KeywordTrackingRun.domain_id == domain_id,
                KeywordTrackingRun.status == RunStatus.COMPLETED,
                KeywordTrackingRun.created_at >= target - timedelta(days=window_days),
                KeywordTrackingRun.created_at <= target + timedelta(days=window_days),
            )
            .order_by(KeywordTrackingRun.created_at.desc())
            .first()
        )
        periods[period] = get_previous_results(db, run.id) if run else {}

    return periods


def calculate_position_change(current: Optional[int], historical: Optional[int]) -> Optional[int]:
    """Positive means the keyword moved up."""
    if current is None or historical is None:
        return None
    return historical - current


def get_run_results(
    db: Session,
    run_id: str,
    limit: int = 50,
    offset: int = 0,
    sort_by: str = "position",
    sort_order: str = "asc",
    position_filter: str = "all",
    change_filter: str = "all",
) -> Dict[str, Any]:
    """Filtered, sorted result rows with 7/30/90 day position changes."""
    query = db.query(KeywordTrackingResult).filter(KeywordTrackingResult.run_id == run_id)

    position = KeywordTrackingResult.position
    previous = KeywordTrackingResult.previous_position
    change = KeywordTrackingResult.position_change

    if position_filter == "top3":
        query = query.filter(position.isnot(None), position <= 3)
    elif position_filter == "top10":
        query = query.filter(position.isnot(None), position <= 10)
    elif position_filter == "top100":
        query = query.filter(position.isnot(None), position <= 100)
    elif position_filter == "notRanking":
        query = query.filter(position.is_(None))

    if change_filter == "improved":
        query = query.filter(change > 0)
    elif change_filter == "declined":
        query = query.filter(change < 0)
    elif change_filter == "unchanged":
        query = query.filter(change == 0)
    elif change_filter == "new":
        query = query.filter(and_(position.isnot(None), previous.is_(None)))
    elif change_filter == "lost":
        query = query.filter(and_(position.is_(None), previous.isnot(None)))

    total = query.count()

    column = SORT_COLUMNS.get(sort_by, KeywordTrackingResult.position)
    ordering = column.desc() if sort_order == "desc" else column.asc()
    rows = query.order_by(ordering).offset(offset).limit(limit).all()

    history: Dict[str, Dict[str, Optional[int]]] = {period: {} for period in HISTORY_WINDOWS}
    run = get_run(db, run_id)
    if run is not None and run.created_at is not None:
        history = get_historical_positions(db, run.domain_id, run.created_at)

    results = []
    for row in rows:
        item = result_to_dict(row)
        for period in HISTORY_WINDOWS:
            item[f"change{period}"] = calculate_position_change(
                row.position, history[period].get(row.tracked_keyword_id)
            )
        results.append(item)

    return {"results": results, "total": total}


# =============================================================================
# SCHEDULES
# =============================================================================

def _parse_time_of_day(value: Optional[str]):
    parts = (value or "06:00").split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return 6, 0
    return hours, minutes


def _js_weekday(value: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


def _with_day_clamped(value: datetime, year: int, month: int, day: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(day, last_day))


def calculate_next_run_time(
    frequency: str,
    time_of_day: str = "06:00",
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    last_run_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Next run time for a schedule, at time_of_day UTC.

    weekly:   next matching weekday strictly after now (Sunday by default)
    biweekly: as weekly, plus 14 days if the last run is under 14 days before it
    monthly:  day_of_month (1 by default), clamped to the month's last day
    """
    now = now or datetime.utcnow()
    hours, minutes = _parse_time_of_day(time_of_day)
    frequency = frequency.value if isinstance(frequency, ScheduleFrequency) else frequency

    next_run = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)

    if frequency in ("weekly", "biweekly"):
        target_day = day_of_week if day_of_week is not None else 0
        while _js_weekday(next_run) != target_day or next_run <= now:
            next_run += timedelta(days=1)

        if frequency == "biweekly" and last_run_at is not None:
            if (next_run - last_run_at).days < 14:
                next_run += timedelta(days=14)

    elif frequency == "monthly":
        target_day = day_of_month or 1
        next_run = _with_day_clamped(next_run, now.year, now.month, target_day)
        if next_run <= now:
            year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
            next_run = _with_day_clamped(next_run, year, month, target_day)

    return next_run


def _schedule_next_run(schedule: KeywordTrackingSchedule) -> datetime:
    return calculate_next_run_time(
        schedule.frequency,
        schedule.time_of_day,
        schedule.day_of_week,
        schedule.day_of_month,
        schedule.last_run_at,
    )


def get_schedule_for_domain(db: Session, domain_id: str) -> Optional[KeywordTrackingSchedule]:
    return (
        db.query(KeywordTrackingSchedule)
        .filter(KeywordTrackingSchedule.domain_id == domain_id)
        .first()
    )


def create_schedule(
    db: Session,
    domain_id: str,
    user_id: str,
    frequency: ScheduleFrequency = ScheduleFrequency.WEEKLY,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    time_of_day: str = "06:00",
    location_name: str = "United States",
    language_code: str = "en",
    is_enabled: bool = True,
) -> KeywordTrackingSchedule:
    schedule = KeywordTrackingSchedule(
        domain_id=domain_id,
        user_id=user_id,
        frequency=frequency,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        time_of_day=time_of_day,
        location_name=location_name,
        language_code=language_code,
        is_enabled=is_enabled,
    )
    schedule.next_run_at = _schedule_next_run(schedule)
    db.add(schedule)
    db.commit()
    logger.info(f"Created {frequency.value} tracking schedule for domain {domain_id}")
    return schedule


def update_schedule(db: Session, schedule: KeywordTrackingSchedule, **fields) -> KeywordTrackingSchedule:
    """Apply changes; next_run_at is recalculated when timing fields change."""
    timing_changed = False
    for key, value in fields.items():
        if value is None or not hasattr(schedule, key):
            continue
        if key in SCHEDULE_TIMING_FIELDS and getattr(schedule, key) != value:
            timing_changed = True
        setattr(schedule, key, value)

    if timing_changed:
        schedule.next_run_at = _schedule_next_run(schedule)
    db.commit()
    return schedule


def delete_schedule(db: Session, schedule: KeywordTrackingSchedule) -> None:
    db.delete(schedule)
    db.commit()


def get_schedules_due(db: Session, limit: int = 20) -> List[KeywordTrackingSchedule]:
    return (
        db.query(KeywordTrackingSchedule)
        .filter(
            KeywordTrackingSchedule.is_enabled.is_(True),
            KeywordTrackingSchedule.next_run_at <= datetime.utcnow(),
        )
        .order_by(KeywordTrackingSchedule.next_run_at.asc())
        .limit(limit)
        .all()
    )


def update_schedule_after_run(db: Session, schedule: KeywordTrackingSchedule, run_id: str) -> None:
    schedule.last_run_at = datetime.utcnow()
    schedule.last_run_id = run_id
    schedule.next_run_at = _schedule_next_run(schedule)
    db.commit()


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def run_to_dict(run: KeywordTrackingRun) -> Dict[str, Any]:
    return {
        "id": run.id,
        "domainId": run.domain_id,
        "status": run.status.value,
        "progress": run.progress,
        "locationName": run.location_name,
        "languageCode": run.language_code,
        "triggeredBy": run.triggered_by,
        "keywordsTracked": run.keywords_tracked,
        "avgPosition": run.avg_position,
        "keywordsInTop3": run.keywords_in_top_3,
        "keywordsInTop10": run.keywords_in_top_10,
        "keywordsInTop100": run.keywords_in_top_100,
        "keywordsNotRanking": run.keywords_not_ranking,
        "improvedCount": run.keywords_improved,
        "declinedCount": run.keywords_declined,
        "unchangedCount": run.keywords_unchanged,
        "newRankings": run.new_rankings,
        "lostRankings": run.lost_rankings,
        "apiCallsUsed": run.api_calls_used,
        "estimatedCost": run.estimated_cost,
        "errorMessage": run.error_message,
        "startedAt": _iso(run.started_at),
        "completedAt": _iso(run.completed_at),
        "createdAt": _iso(run.created_at),
    }


def result_to_dict(row: KeywordTrackingResult) -> Dict[str, Any]:
    return {
        "id": row.id,
        "runId": row.run_id,
        "trackedKeywordId": row.tracked_keyword_id,
        "keyword": row.keyword,
        "searchVolume": row.search_volume,
        "volumeDate": row.volume_date,
        "cpc": row.cpc,
        "keywordDifficulty": row.keyword_difficulty,
        "position": row.position,
        "previousPosition": row.previous_position,
        "positionChange": row.position_change,
        "rankingUrl": row.ranking_url,
        "topDomain": row.top_domain,
        "serpFeatures": row.serp_features or [],
        "top3Domains": row.top_3_domains or [],
        "localPackPosition": row.local_pack_position,
        "localPackRating": row.local_pack_rating,
        "localPackReviews": row.local_pack_reviews,
        "localPackCid": row.local_pack_cid,
    }


def schedule_to_dict(schedule: KeywordTrackingSchedule) -> Dict[str, Any]:
    return {
        "id": schedule.id,
        "domainId": schedule.domain_id,
        "frequency": schedule.frequency.value,
        "dayOfWeek": schedule.day_of_week,
        "dayOfMonth": schedule.day_of_month,
        "timeOfDay": schedule.time_of_day,
        "locationName": schedule.location_name,
        "languageCode": schedule.language_code,
        "isEnabled": schedule.is_enabled,
        "lastRunAt": _iso(schedule.last_run_at),
        "lastRunId": schedule.last_run_id,
        "nextRunAt": _iso(schedule.next_run_at),
    }
