"""
SQLAlchemy Models for the SEO Dashboard

Every table follows the same lifecycle: a route handler creates the row,
a background job moves it through its statuses, and API reads return it.

Third-party payloads (audit step results, GBP raw data) are stored
verbatim in JSON columns. JSON maps to JSONB on PostgreSQL and plain
JSON on SQLite.
"""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text,
    ForeignKey, Enum, Index, UniqueConstraint, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

JSONType = JSON().with_variant(JSONB, "postgresql")


def _uuid() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class DomainStatus(enum.Enum):
    """Lifecycle of a registered domain"""
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class AuditStatus(enum.Enum):
    """Status of a full site audit"""
    PENDING = "PENDING"
    CRAWLING = "CRAWLING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class KeywordAuditStatus(enum.Enum):
    """Status of a keyword optimization audit"""
    PENDING = "PENDING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RunStatus(enum.Enum):
    """Status of a keyword tracking or AI-SEO run"""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ScheduleFrequency(enum.Enum):
    """Keyword tracking schedule frequency"""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class CampaignStatus(enum.Enum):
    """Local SEO campaign status"""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class ScanFrequency(enum.Enum):
    """How often a local campaign is re-scanned"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ScanStatus(enum.Enum):
    """Status of a geo-grid scan"""
    PENDING = "PENDING"
    SCANNING = "SCANNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# =============================================================================
# CORE TABLES
# =============================================================================

class Domain(Base):
    """Domains registered by a user"""
    __tablename__ = "domains"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)  # normalized, no scheme or www

    # Business context used by audits and local SEO
    business_name = Column(String(255))
    city = Column(String(100))
    state = Column(String(50))

    status = Column(Enum(DomainStatus), default=DomainStatus.ACTIVE, nullable=False)
    is_pinned = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    audits = relationship("Audit", back_populates="domain_ref")
    keywords = relationship("TrackedKeyword", back_populates="domain_ref", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("user_id", "domain", name="uq_user_domain"),
        Index("idx_domain_user_status", "user_id", "status"),
    )


class Audit(Base):
    """A full site audit: on-page, SERP, backlinks, competitors, business"""
    __tablename__ = "audits"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="SET NULL"), nullable=True)
    domain = Column(String(255), nullable=False)

    # Inputs
    business_name = Column(String(255))
    location = Column(String(255))
    city = Column(String(100))
    state = Column(String(50))
    gmb_place_id = Column(String(255))
    target_keywords = Column(JSONType, default=list)
    competitor_domains = Column(JSONType, default=list)

    # Progress
    status = Column(Enum(AuditStatus), default=AuditStatus.PENDING, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    current_step = Column(String(50))
    step_results = Column(JSONType, default=dict)

    # Scores (0-100)
    overall_score = Column(Integer)
    technical_score = Column(Integer)
    content_score = Column(Integer)
    local_score = Column(Integer)
    backlinks_score = Column(Integer)

    error_message = Column(Text)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    domain_ref = relationship("Domain", back_populates="audits")

    __table_args__ = (
        Index("idx_audit_user_created", "user_id", "created_at"),
        Index("idx_audit_domain", "domain"),
        Index("idx_audit_status", "status"),
    )


class TrackedKeyword(Base):
    """Keyword library entry for a domain"""
    __tablename__ = "tracked_keywords"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    keyword = Column(String(255), nullable=False)  # lowercased, trimmed

    # Metrics
    search_volume = Column(Integer)
    cpc = Column(Float)
    keyword_difficulty = Column(Integer)
    search_intent = Column(String(50))
    category = Column(String(100))
    volume_source = Column(String(20))  # current, historical
    volume_date = Column(String(7))     # YYYY-MM for historical volumes

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    domain_ref = relationship("Domain", back_populates="keywords")

    __table_args__ = (
        UniqueConstraint("domain_id", "keyword", name="uq_domain_keyword"),
        Index("idx_keyword_domain_active", "domain_id", "is_active"),
    )


class KeywordOptimizationAudit(Base):
    """Single-page audit against one target keyword, with a written report"""
    __tablename__ = "keyword_optimization_audits"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="SET NULL"), nullable=True)

    url = Column(String(2000), nullable=False)
    target_keyword = Column(String(255), nullable=False)
    location_name = Column(String(255))
    language_code = Column(String(10), default="en")

    status = Column(Enum(KeywordAuditStatus), default=KeywordAuditStatus.PENDING, nullable=False)

    # Collected data
    ranked_keywords_data = Column(JSONType)
    serp_data = Column(JSONType)
    backlinks_data = Column(JSONType)
    keyword_suggestions = Column(JSONType)

    # Metrics
    current_position = Column(Integer)
    search_volume = Column(Integer)
    keyword_difficulty = Column(Integer)
    domain_rank = Column(Integer)
    referring_domains = Column(Integer)

    # Scores (0-100)
    overall_score = Column(Integer)
    title_score = Column(Integer)
    meta_score = Column(Integer)
    heading_score = Column(Integer)
    content_score = Column(Integer)
    internal_links_score = Column(Integer)

    report_markdown = Column(Text)
    report_data = Column(JSONType)
    api_cost = Column(Float, default=0.0)

    error_message = Column(Text)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_kw_audit_user_created", "user_id", "created_at"),
    )


# =============================================================================
# KEYWORD TRACKING
# =============================================================================

class KeywordTrackingRun(Base):
    """One rank-tracking pass over a domain's active keywords"""
    __tablename__ = "keyword_tracking_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    status = Column(Enum(RunStatus), default=RunStatus.PENDING, nullable=False)
    location_name = Column(String(255), default="United States")
    language_code = Column(String(10), default="en")
    triggered_by = Column(String(20), default="manual")  # manual, scheduled
    progress = Column(Integer, default=0, nullable=False)

    # Summary metrics
    keywords_tracked = Column(Integer, default=0)
    avg_position = Column(Float)
    keywords_in_top_3 = Column(Integer, default=0)
    keywords_in_top_10 = Column(Integer, default=0)
    keywords_in_top_100 = Column(Integer, default=0)
    keywords_not_ranking = Column(Integer, default=0)
    keywords_improved = Column(Integer, default=0)
    keywords_declined = Column(Integer, default=0)
    keywords_unchanged = Column(Integer, default=0)
    new_rankings = Column(Integer, default=0)
    lost_rankings = Column(Integer, default=0)

    api_calls_used = Column(Integer, default=0)
    estimated_cost = Column(Float, default=0.0)

    error_message = Column(Text)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    results = relationship("KeywordTrackingResult", back_populates="run", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_tracking_run_domain_created", "domain_id", "created_at"),
    )


class KeywordTrackingResult(Base):
    """Position of one keyword within a tracking run"""
    __tablename__ = "keyword_tracking_results"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(36), ForeignKey("keyword_tracking_runs.id", ondelete="CASCADE"), nullable=False)
    tracked_keyword_id = Column(String(36), ForeignKey("tracked_keywords.id", ondelete="SET NULL"))
    keyword = Column(String(255), nullable=False)

    # Keyword metrics at the time of the run
    search_volume = Column(Integer)
    volume_date = Column(String(7))
    cpc = Column(Float)
    keyword_difficulty = Column(Integer)

    # Ranking
    position = Column(Integer)
    previous_position = Column(Integer)
    position_change = Column(Integer)  # positive = improved
    ranking_url = Column(String(2000))
    top_domain = Column(String(255))
    serp_features = Column(JSONType, default=list)
    top_3_domains = Column(JSONType, default=list)

    # Local pack
    local_pack_position = Column(Integer)
    local_pack_rating = Column(Float)
    local_pack_reviews = Column(Integer)
    local_pack_cid = Column(String(100))

    created_at = Column(DateTime, default=datetime.utcnow)

    run = relationship("KeywordTrackingRun", back_populates="results")

    __table_args__ = (
        Index("idx_tracking_result_run", "run_id"),
        Index("idx_tracking_result_keyword", "tracked_keyword_id"),
    )


class KeywordTrackingSchedule(Base):
    """Recurring tracking schedule, one per domain"""
    __tablename__ = "keyword_tracking_schedules"

    id = Column(String(36), primary_key=True, default=_uuid)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="CASCADE"), nullable=False, unique=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    frequency = Column(Enum(ScheduleFrequency), default=ScheduleFrequency.WEEKLY, nullable=False)
    day_of_week = Column(Integer)   # 0 = Sunday
    day_of_month = Column(Integer)  # 1-31
    time_of_day = Column(String(5), default="06:00")  # HH:MM UTC

    location_name = Column(String(255), default="United States")
    language_code = Column(String(10), default="en")

    is_enabled = Column(Boolean, default=True, nullable=False)
    last_run_at = Column(DateTime)
    last_run_id = Column(String(36))
    next_run_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_schedule_due", "is_enabled", "next_run_at"),
    )


# =============================================================================
# LOCAL SEO
# =============================================================================

class LocalCampaign(Base):
    """Geo-grid ranking campaign for a local business"""
    __tablename__ = "local_campaigns"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="SET NULL"), nullable=True)

    business_name = Column(String(200), nullable=False)
    gmb_place_id = Column(String(255))
    gmb_cid = Column(String(100))

    center_lat = Column(Float, nullable=False)
    center_lng = Column(Float, nullable=False)
    grid_size = Column(Integer, default=7, nullable=False)
    grid_radius_miles = Column(Float, default=5.0, nullable=False)
    keywords = Column(JSONType, default=list)

    status = Column(Enum(CampaignStatus), default=CampaignStatus.ACTIVE, nullable=False)
    scan_frequency = Column(Enum(ScanFrequency), default=ScanFrequency.WEEKLY, nullable=False)
    last_scan_at = Column(DateTime)
    next_scan_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    scans = relationship("GridScan", back_populates="campaign", cascade="all, delete-orphan")
    gbp_snapshots = relationship("GBPSnapshot", back_populates="campaign", cascade="all, delete-orphan")
    competitor_profiles = relationship(
        "GBPCompetitorProfile", back_populates="campaign", cascade="all, delete-orphan"
    )
    detailed_profiles = relationship(
        "GBPDetailedProfile", back_populates="campaign", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_campaign_user", "user_id"),
        Index("idx_campaign_due", "status", "next_scan_at"),
    )


class GridScan(Base):
    """One scan of every grid point for every campaign keyword"""
    __tablename__ = "grid_scans"

    id = Column(String(36), primary_key=True, default=_uuid)
    campaign_id = Column(String(36), ForeignKey("local_campaigns.id", ondelete="CASCADE"), nullable=False)

    status = Column(Enum(ScanStatus), default=ScanStatus.PENDING, nullable=False)
    progress = Column(Integer, default=0, nullable=False)

    avg_rank = Column(Float)
    share_of_voice = Column(Float)
    top_competitor = Column(String(255))
    api_calls_used = Column(Integer, default=0)
    estimated_cost = Column(Float)
    failed_points = Column(Integer, default=0)

    error_message = Column(Text)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    campaign = relationship("LocalCampaign", back_populates="scans")
    point_results = relationship("GridPointResult", back_populates="scan", cascade="all, delete-orphan")
    competitor_stats = relationship("CompetitorStat", back_populates="scan", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_scan_campaign_created", "campaign_id", "created_at"),
    )


class GridPointResult(Base):
    """Target rank at one grid point for one keyword"""
    __tablename__ = "grid_point_results"

    id = Column(String(36), primary_key=True, default=_uuid)
    scan_id = Column(String(36), ForeignKey("grid_scans.id", ondelete="CASCADE"), nullable=False)

    grid_row = Column(Integer, nullable=False)
    grid_col = Column(Integer, nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    keyword = Column(String(255), nullable=False)

    rank = Column(Integer)  # None = not in results
    top_rankings = Column(JSONType, default=list)
    total_results = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)

    scan = relationship("GridScan", back_populates="point_results")

    __table_args__ = (
        Index("idx_point_scan_keyword", "scan_id", "keyword"),
    )


class CompetitorStat(Base):
    """Aggregated stats for one business in one scan"""
    __tablename__ = "competitor_stats"

    id = Column(String(36), primary_key=True, default=_uuid)
    scan_id = Column(String(36), ForeignKey("grid_scans.id", ondelete="CASCADE"), nullable=False)

    business_name = Column(String(255), nullable=False)
    gmb_cid = Column(String(100))
    rating = Column(Float)
    review_count = Column(Integer)

    avg_rank = Column(Float)
    times_in_top_3 = Column(Integer, default=0)
    times_in_top_10 = Column(Integer, default=0)
    times_in_top_20 = Column(Integer, default=0)
    share_of_voice = Column(Float, default=0.0)

    prev_avg_rank = Column(Float)
    rank_change = Column(Float)

    created_at = Column(DateTime, default=datetime.utcnow)

    scan = relationship("GridScan", back_populates="competitor_stats")

    __table_args__ = (
        Index("idx_competitor_stat_scan", "scan_id"),
    )


class GBPSnapshot(Base):
    """Point-in-time copy of the campaign business's GBP listing"""
    __tablename__ = "gbp_snapshots"

    id = Column(String(36), primary_key=True, default=_uuid)
    campaign_id = Column(String(36), ForeignKey("local_campaigns.id", ondelete="CASCADE"), nullable=False)

    business_name = Column(String(255), nullable=False)
    gmb_place_id = Column(String(255))
    gmb_cid = Column(String(100))
    rating = Column(Float)
    review_count = Column(Integer)
    rating_distribution = Column(JSONType)
    completeness_score = Column(Integer)

    address = Column(String(500))
    phone = Column(String(50))
    website = Column(String(500))
    categories = Column(JSONType, default=list)
    attributes = Column(JSONType)
    work_hours = Column(JSONType)
    photos = Column(JSONType)
    raw_data = Column(JSONType)

    created_at = Column(DateTime, default=datetime.utcnow)

    campaign = relationship("LocalCampaign", back_populates="gbp_snapshots")

    __table_args__ = (
        Index("idx_snapshot_campaign_created", "campaign_id", "created_at"),
    )


class GBPCompetitorProfile(Base):
    """Comparison profile of a competitor's GBP listing"""
    __tablename__ = "gbp_competitor_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    campaign_id = Column(String(36), ForeignKey("local_campaigns.id", ondelete="CASCADE"), nullable=False)
    gmb_cid = Column(String(100), nullable=False)

    business_name = Column(String(255), nullable=False)
    rating = Column(Float)
    review_count = Column(Integer)
    description = Column(Text)
    primary_category = Column(String(255))
    additional_categories = Column(JSONType, default=list)
    name_has_keyword = Column(Boolean, default=False)
    name_has_city = Column(Boolean, default=False)

    address = Column(String(500))
    phone = Column(String(50))
    website = Column(String(500))

    has_description = Column(Boolean, default=False)
    description_length = Column(Integer, default=0)
    has_photos = Column(Boolean, default=False)
    photo_count = Column(Integer, default=0)
    has_services = Column(Boolean, default=False)
    has_products = Column(Boolean, default=False)
    is_claimed = Column(Boolean, default=False)

    attributes = Column(JSONType)
    attribute_count = Column(Integer, default=0)
    work_hours = Column(JSONType)
    hours_complete = Column(Boolean, default=False)

    completeness_score = Column(Integer)
    raw_data = Column(JSONType)
    fetched_at = Column(DateTime, default=datetime.utcnow)

    campaign = relationship("LocalCampaign", back_populates="competitor_profiles")

    __table_args__ = (
        UniqueConstraint("campaign_id", "gmb_cid", name="uq_competitor_profile_campaign_cid"),
    )


class GBPDetailedProfile(Base):
    """Posts, Q&A and reviews detail for one GBP listing in a campaign"""
    __tablename__ = "gbp_detailed_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    campaign_id = Column(String(36), ForeignKey("local_campaigns.id", ondelete="CASCADE"), nullable=False)
    gmb_cid = Column(String(255), nullable=False)
    business_name = Column(String(255), nullable=False)

    rating = Column(Float)
    review_count = Column(Integer)

    # Reviews
    reviews_fetched_at = Column(DateTime)
    reviews_count_by_rating = Column(JSONType)
    recent_reviews = Column(JSONType)
    owner_response_rate = Column(Float)
    owner_response_count = Column(Integer)
    raw_reviews_data = Column(JSONType)

    # Posts
    posts_fetched_at = Column(DateTime)
    posts_count = Column(Integer)
    recent_posts = Column(JSONType)
    last_post_date = Column(DateTime)
    posts_per_month_avg = Column(Float)
    raw_posts_data = Column(JSONType)

    # Q&A
    qa_fetched_at = Column(DateTime)
    questions_count = Column(Integer)
    answered_count = Column(Integer)
    unanswered_count = Column(Integer)
    recent_qa = Column(JSONType)
    raw_qa_data = Column(JSONType)

    fetched_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    campaign = relationship("LocalCampaign", back_populates="detailed_profiles")

    __table_args__ = (
        UniqueConstraint("campaign_id", "gmb_cid", name="uq_detailed_profile_campaign_cid"),
    )


# =============================================================================
# AI-SEO
# =============================================================================

class AiSeoRun(Base):
    """Brand visibility check across LLM platforms"""
    __tablename__ = "ai_seo_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    business_name = Column(String(255), nullable=False)
    keywords = Column(JSONType, default=list)
    llm_platforms = Column(JSONType, default=list)
    location_code = Column(Integer, default=2840)

    status = Column(Enum(RunStatus), default=RunStatus.PENDING, nullable=False)
    visibility_score = Column(Integer)
    total_mentions = Column(Integer, default=0)
    total_citations = Column(Integer, default=0)
    recommendations = Column(JSONType)

    error_message = Column(Text)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    results = relationship("AiSeoResult", back_populates="run", cascade="all, delete-orphan")
    platform_scores = relationship("AiSeoPlatformScore", back_populates="run", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_ai_seo_run_domain_created", "domain_id", "created_at"),
    )


class AiSeoResult(Base):
    """
    One visibility row. keyword=None rows are platform-level summaries,
    llm_platform="all" rows aggregate one keyword over every platform.
    """
    __tablename__ = "ai_seo_results"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(36), ForeignKey("ai_seo_runs.id", ondelete="CASCADE"), nullable=False)

    keyword = Column(String(255), nullable=True)
    llm_platform = Column(String(50), nullable=False)

    mention_rate = Column(Float)
    citation_rate = Column(Float)
    visibility_score = Column(Integer)
    sentiment_score = Column(Float)
    impressions = Column(Integer)
    mentions_count = Column(Integer, default=0)

    is_mentioned = Column(Boolean, default=False)
    is_cited = Column(Boolean, default=False)
    mention_context = Column(Text)
    raw_response = Column(JSONType)

    created_at = Column(DateTime, default=datetime.utcnow)

    run = relationship("AiSeoRun", back_populates="results")

    __table_args__ = (
        Index("idx_ai_seo_result_run", "run_id"),
    )


class AiSeoPlatformScore(Base):
    """Per-platform summary scores for a run"""
    __tablename__ = "ai_seo_platform_scores"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(36), ForeignKey("ai_seo_runs.id", ondelete="CASCADE"), nullable=False)
    llm_platform = Column(String(50), nullable=False)

    mention_rate = Column(Float, default=0.0)
    average_position = Column(Float)
    sentiment_score = Column(Float)
    citation_rate = Column(Float, default=0.0)
    visibility_score = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)

    run = relationship("AiSeoRun", back_populates="platform_scores")

    __table_args__ = (
        UniqueConstraint("run_id", "llm_platform", name="uq_run_platform"),
    )


# =============================================================================
# ARCHIVE
# =============================================================================

class ArchivedAudit(Base):
    """Copy of a deleted-by-archive audit"""
    __tablename__ = "archived_audits"

    id = Column(String(36), primary_key=True)  # original audit id
    user_id = Column(String(36), nullable=False)
    domain = Column(String(255), nullable=False)
    status = Column(String(20))
    data = Column(JSONType)
    created_at = Column(DateTime)
    archived_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_archived_audit_user", "user_id", "archived_at"),
    )


class ArchivedLocalCampaign(Base):
    """Copy of a deleted-by-archive local campaign"""
    __tablename__ = "archived_local_campaigns"

    id = Column(String(36), primary_key=True)  # original campaign id
    user_id = Column(String(36), nullable=False)
    business_name = Column(String(200), nullable=False)
    data = Column(JSONType)
    created_at = Column(DateTime)
    archived_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_archived_campaign_user", "user_id", "archived_at"),
    )
