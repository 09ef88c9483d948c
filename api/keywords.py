"""
API Endpoints for the Keyword Library

Keywords are saved per domain and reused by rank tracking, audits
and AI-SEO runs. New keywords get Google Ads volumes; keywords that
Google Ads withholds fall back to the latest historical month.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.operations import keywords as keyword_ops
from seo_dashboard.database.session import get_db
from seo_dashboard.dataforseo.errors import DataForSEOError
from seo_dashboard.dataforseo.keyword_enrichment import enrich_keywords_with_historical_data
from seo_dashboard.dataforseo.service import create_dataforseo
from seo_dashboard.seo.preset_keywords import STATE_MAP, generate_preset_keywords

from .domains import get_owned_domain
from .errors import NotFoundError, ValidationError, ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/keywords",
    tags=["Keywords"],
    dependencies=[Depends(get_current_user)],
)

MAX_KEYWORDS_PER_REQUEST = 500


# =============================================================================
# REQUEST MODELS
# =============================================================================

class PresetRequest(BaseModel):
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=2)


class AddKeywordsRequest(BaseModel):
    """Either an explicit keyword list or a city/state preset."""
    domainId: str
    keywords: List[str] = Field(default_factory=list, max_length=MAX_KEYWORDS_PER_REQUEST)
    preset: Optional[PresetRequest] = None
    category: Optional[str] = Field(default=None, max_length=100)
    locationName: str = "United States"
    enrich: bool = True


class UpdateKeywordRequest(BaseModel):
    isActive: Optional[bool] = None
    category: Optional[str] = Field(default=None, max_length=100)
    searchIntent: Optional[str] = Field(default=None, max_length=50)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

async def fetch_keyword_metrics(keywords: List[str], location_name: str) -> Dict[str, Dict[str, Any]]:
    """
    Volumes for new library keywords.

    Returns normalized keyword -> column values. Lookup failures are logged
    and leave the keywords without metrics.
    """
    try:
        dfs = create_dataforseo()
    except DataForSEOError as e:
        logger.warning(f"Skipping keyword enrichment: {e}")
        return {}

    rows = [{"keyword": k, "search_volume": None} for k in keywords]
    try:
        try:
            items = await dfs.keywords.search_volume(keywords, location_name=location_name)
        except DataForSEOError as e:
            logger.warning(f"Google Ads volume lookup failed: {e}")
            items = []

        by_keyword = {(i.get("keyword") or "").lower(): i for i in items}
        for row in rows:
            item = by_keyword.get(row["keyword"])
            if item and item.get("search_volume"):
                row["search_volume"] = item["search_volume"]
                row["cpc"] = item.get("cpc")
                row["volume_source"] = "current"

        await enrich_keywords_with_historical_data(dfs.labs, rows, location_name=location_name)
    finally:
        await dfs.close()

    return {
        row["keyword"]: {
            "search_volume": row.get("search_volume"),
            "cpc": row.get("cpc"),
            "volume_source": row.get("volume_source"),
            "volume_date": row.get("historical_data_date"),
        }
        for row in rows
        if row.get("search_volume")
    }


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("")
async def list_keywords(
    domain_id: str = Query(..., alias="domainId"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_domain(db, domain_id, current_user)
    records = keyword_ops.get_domain_keywords(db, domain_id, active_only=not include_inactive)
    return ok({
        "keywords": [keyword_ops.keyword_to_dict(r) for r in records],
        "total": len(records),
    })


@router.post("", status_code=201)
async def add_keywords(
    request: AddKeywordsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_domain(db, request.domainId, current_user)

    keywords = list(request.keywords)
    category = request.category
    if request.preset is not None:
        if request.preset.state.upper() not in STATE_MAP:
            raise ValidationError("Unknown state abbreviation")
        keywords.extend(generate_preset_keywords(request.preset.city, request.preset.state))
        category = category or "preset"

    keywords = [keyword_ops.normalize_keyword(k) for k in keywords]
    keywords = list(dict.fromkeys(k for k in keywords if k))
    if not keywords:
        raise ValidationError("At least one keyword is required")

    metrics = await fetch_keyword_metrics(keywords, request.locationName) if request.enrich else {}

    result = keyword_ops.add_keywords(
        db,
        user_id=current_user.id,
        domain_id=request.domainId,
        keywords=keywords,
        metrics=metrics,
        category=category,
    )
    return ok({
        "added": result["added"],
        "existing": result["existing"],
        "keywords": [keyword_ops.keyword_to_dict(k) for k in result["keywords"]],
    })


@router.patch("/{keyword_id}")
async def update_keyword(
    keyword_id: str,
    request: UpdateKeywordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    record = keyword_ops.update_keyword(
        db,
        keyword_id,
        current_user.id,
        is_active=request.isActive,
        category=request.category,
        search_intent=request.searchIntent,
    )
    if record is None:
        raise NotFoundError("Keyword not found")
    return ok(keyword_ops.keyword_to_dict(record))


@router.delete("/{keyword_id}")
async def delete_keyword(
    keyword_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not keyword_ops.delete_keyword(db, keyword_id, current_user.id):
        raise NotFoundError("Keyword not found")
    return ok({"id": keyword_id, "deleted": True})
