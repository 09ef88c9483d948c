"""
GBP profile operations

Cached Google Business Profile data for a campaign's competitors:
- Competitor profiles: my_business_info summaries used by the comparison view
- Detailed profiles: posts, Q&A and reviews fetched through task endpoints

Both are keyed by (campaign_id, gmb_cid) and refreshed when stale.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...local_seo.gbp_comparison import build_comparison_profile
from ..models import GBPCompetitorProfile, GBPDetailedProfile

logger = logging.getLogger(__name__)

PROFILE_TTL_SECONDS = 4 * 60 * 60

DETAIL_TYPES = ("posts", "qa", "reviews")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """DataForSEO timestamps look like '2024-01-15 10:20:30 +00:00'. Returns naive UTC."""
    if not value:
        return None
    for fmt in ("%Y-%m-%d %H:%M:%S %z", "%Y-%m-%dT%H:%M:%S%z"):
        try:
            parsed = datetime.strptime(value, fmt)
            return parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except ValueError:
            continue
    logger.debug(f"Unparseable timestamp: {value}")
    return None


# =============================================================================
# COMPETITOR PROFILES
# =============================================================================

def save_competitor_gbp_profile(
    db: Session,
    campaign_id: str,
    info: Dict[str, Any],
    keywords: List[str],
    city: Optional[str] = None,
    gmb_cid: Optional[str] = None,
) -> GBPCompetitorProfile:
    """Upsert a competitor's profile from a my_business_info item."""
    profile = build_comparison_profile(info, keywords, city)
    cid = gmb_cid or profile.gmb_cid or profile.business_name

    record = (
        db.query(GBPCompetitorProfile)
        .filter(GBPCompetitorProfile.campaign_id == campaign_id, GBPCompetitorProfile.gmb_cid == cid)
        .first()
    )
    if record is None:
        record = GBPCompetitorProfile(campaign_id=campaign_id, gmb_cid=cid)
        db.add(record)

    record.business_name = profile.business_name
    record.rating = profile.rating
    record.review_count = profile.review_count
    record.description = info.get("description")
    record.primary_category = profile.primary_category
    record.additional_categories = profile.additional_categories
    record.name_has_keyword = profile.name_has_keyword
    record.name_has_city = profile.name_has_city
    record.address = info.get("address")
    record.phone = info.get("phone")
    record.website = profile.website
    record.has_description = profile.has_description
    record.description_length = profile.description_length
    record.has_photos = profile.photo_count > 0
    record.photo_count = profile.photo_count
    record.is_claimed = profile.is_claimed
    record.attributes = profile.attributes
    record.attribute_count = profile.attribute_count
    record.work_hours = profile.work_hours
    record.hours_complete = profile.hours_complete
    record.completeness_score = profile.completeness_score
    record.raw_data = info
    record.fetched_at = datetime.utcnow()

    db.commit()
    return record


def get_competitor_gbp_profiles(
    db: Session,
    campaign_id: str,
    max_age_seconds: Optional[int] = None,
) -> List[GBPCompetitorProfile]:
    query = db.query(GBPCompetitorProfile).filter(GBPCompetitorProfile.campaign_id == campaign_id)
    if max_age_seconds is not None:
        cutoff = datetime.utcnow() - timedelta(seconds=max_age_seconds)
        query = query.filter(GBPCompetitorProfile.fetched_at >= cutoff)
    return query.order_by(GBPCompetitorProfile.fetched_at.desc()).all()


def check_profiles_need_refresh(
    db: Session,
    campaign_id: str,
    cids: List[str],
    max_age_seconds: int = PROFILE_TTL_SECONDS,
) -> List[str]:
    """The cids with no profile or one older than max_age_seconds."""
    if not cids:
        return []
    cutoff = datetime.utcnow() - timedelta(seconds=max_age_seconds)
    fresh = {
        row.gmb_cid
        for row in db.query(GBPCompetitorProfile.gmb_cid).filter(
            GBPCompetitorProfile.campaign_id == campaign_id,
            GBPCompetitorProfile.gmb_cid.in_(cids),
            GBPCompetitorProfile.fetched_at >= cutoff,
        )
    }
    return [cid for cid in cids if cid not in fresh]


# =============================================================================
# DETAILED PROFILES
# =============================================================================

def get_detailed_profile(db: Session, campaign_id: str, gmb_cid: str) -> Optional[GBPDetailedProfile]:
    return (
        db.query(GBPDetailedProfile)
        .filter(GBPDetailedProfile.campaign_id == campaign_id, GBPDetailedProfile.gmb_cid == gmb_cid)
        .first()
    )


def upsert_detailed_profile(
    db: Session,
    campaign_id: str,
    gmb_cid: str,
    business_name: str,
    rating: Optional[float] = None,
    review_count: Optional[int] = None,
) -> GBPDetailedProfile:
    record = get_detailed_profile(db, campaign_id, gmb_cid)
    if record is None:
        record = GBPDetailedProfile(campaign_id=campaign_id, gmb_cid=gmb_cid, business_name=business_name)
        db.add(record)

    record.business_name = business_name
    if rating is not None:
        record.rating = rating
    if review_count is not None:
        record.review_count = review_count
    record.fetched_at = datetime.utcnow()
    db.commit()
    return record


def is_detail_fresh(
    record: Optional[GBPDetailedProfile],
    data_type: str,
    max_age_seconds: int = PROFILE_TTL_SECONDS,
) -> bool:
    """True when the given data type was fetched within max_age_seconds."""
    if record is None:
        return False
    fetched_at = getattr(record, f"{data_type}_fetched_at")
    if fetched_at is None:
        return False
    return datetime.utcnow() - fetched_at < timedelta(seconds=max_age_seconds)


def update_detailed_posts(db: Session, record: GBPDetailedProfile, result: Dict[str, Any]) -> int:
    """Store a posts task result. Returns the post count."""
    items = result.get("items") or []
    now = datetime.utcnow()
    timestamps = [t for t in (_parse_timestamp(p.get("timestamp")) for p in items) if t is not None]
    six_months_ago = now - timedelta(days=182)

    record.posts_count = result.get("items_count") or len(items)
    record.recent_posts = [
        {
            "text": (p.get("post_text") or "")[:500],
            "timestamp": p.get("timestamp"),
            "url": p.get("url"),
            "images": p.get("images_url"),
        }
        for p in items[:10]
    ]
    record.last_post_date = max(timestamps) if timestamps else None
    record.posts_per_month_avg = round(sum(1 for t in timestamps if t >= six_months_ago) / 6, 2)
    record.raw_posts_data = result
    record.posts_fetched_at = now
    db.commit()
    return record.posts_count


def update_detailed_qa(db: Session, record: GBPDetailedProfile, result: Dict[str, Any]) -> int:
    """Store a Q&A task result. Returns the question count."""
    answered = result.get("items") or []
    unanswered = result.get("items_without_answers") or []

    record.answered_count = sum(1 for q in answered if q.get("items"))
    record.unanswered_count = len(unanswered)
    record.questions_count = result.get("items_count") or (len(answered) + len(unanswered))
    record.recent_qa = [
        {
            "question": q.get("question_text"),
            "timestamp": q.get("timestamp"),
            "answers": [a.get("answer_text") for a in (q.get("items") or [])],
        }
        for q in answered[:5] + unanswered[:5]
    ]
    record.raw_qa_data = result
    record.qa_fetched_at = datetime.utcnow()
    db.commit()
    return record.questions_count


def update_detailed_reviews(db: Session, record: GBPDetailedProfile, result: Dict[str, Any]) -> int:
    """Store a reviews task result. Returns the review count."""
    items = result.get("items") or []
    by_rating = {str(star): 0 for star in range(1, 6)}
    responded = 0

    for review in items:
        value = (review.get("rating") or {}).get("value")
        if value is not None:
            star = min(5, max(1, round(value)))
            by_rating[str(star)] += 1
        if review.get("owner_answer"):
            responded += 1

    record.reviews_count_by_rating = by_rating
    record.owner_response_count = responded
    record.owner_response_rate = round(responded / len(items) * 100, 1) if items else None
    record.recent_reviews = [
        {
            "rating": (r.get("rating") or {}).get("value"),
            "text": (r.get("review_text") or "")[:500],
            "timestamp": r.get("timestamp"),
            "author": r.get("profile_name"),
            "ownerAnswer": r.get("owner_answer"),
        }
        for r in items[:10]
    ]
    if result.get("reviews_count") is not None:
        record.review_count = result["reviews_count"]
    if (result.get("rating") or {}).get("value") is not None:
        record.rating = result["rating"]["value"]
    record.raw_reviews_data = result
    record.reviews_fetched_at = datetime.utcnow()
    db.commit()
    return len(items)


def has_detailed_data(record: Optional[GBPDetailedProfile]) -> bool:
    if record is None:
        return False
    return any(getattr(record, f"{t}_fetched_at") is not None for t in DETAIL_TYPES)


def get_campaign_detailed_profiles(db: Session, campaign_id: str) -> List[GBPDetailedProfile]:
    return (
        db.query(GBPDetailedProfile)
        .filter(GBPDetailedProfile.campaign_id == campaign_id)
        .order_by(GBPDetailedProfile.fetched_at.desc())
        .all()
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def detailed_profile_to_dict(record: GBPDetailedProfile) -> Dict[str, Any]:
    return {
        "gmbCid": record.gmb_cid,
        "businessName": record.business_name,
        "rating": record.rating,
        "reviewCount": record.review_count,
        "posts": {
            "count": record.posts_count,
            "lastPostDate": _iso(record.last_post_date),
            "perMonthAvg": record.posts_per_month_avg,
            "recent": record.recent_posts or [],
            "fetchedAt": _iso(record.posts_fetched_at),
        },
        "qa": {
            "questionsCount": record.questions_count,
            "answeredCount": record.answered_count,
            "unansweredCount": record.unanswered_count,
            "recent": record.recent_qa or [],
            "fetchedAt": _iso(record.qa_fetched_at),
        },
        "reviews": {
            "countByRating": record.reviews_count_by_rating,
            "ownerResponseRate": record.owner_response_rate,
            "ownerResponseCount": record.owner_response_count,
            "recent": record.recent_reviews or [],
            "fetchedAt": _iso(record.reviews_fetched_at),
        },
        "fetchedAt": _iso(record.fetched_at),
    }
