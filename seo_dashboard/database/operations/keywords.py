"""
Keyword library operations

Tracked keywords are saved per domain and reused by audits,
rank tracking and AI-SEO runs.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models import TrackedKeyword

logger = logging.getLogger(__name__)

METRIC_FIELDS = ("search_volume", "cpc", "keyword_difficulty", "search_intent", "volume_source", "volume_date")
UPDATABLE_FIELDS = ("is_active", "category", "search_intent")


def normalize_keyword(keyword: str) -> str:
    return " ".join((keyword or "").lower().split())


def get_domain_keywords(db: Session, domain_id: str, active_only: bool = True) -> List[TrackedKeyword]:
    query = db.query(TrackedKeyword).filter(TrackedKeyword.domain_id == domain_id)
    if active_only:
        query = query.filter(TrackedKeyword.is_active.is_(True))
    return query.order_by(TrackedKeyword.created_at.asc()).all()


def get_keyword(db: Session, keyword_id: str, user_id: str) -> Optional[TrackedKeyword]:
    return (
        db.query(TrackedKeyword)
        .filter(TrackedKeyword.id == keyword_id, TrackedKeyword.user_id == user_id)
        .first()
    )


def add_keywords(
    db: Session,
    user_id: str,
    domain_id: str,
    keywords: Iterable[str],
    metrics: Optional[Dict[str, Dict[str, Any]]] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Add keywords to a domain's library.

    Existing keywords are reactivated rather than duplicated. `metrics`
    maps a normalized keyword to column values (search_volume, cpc, ...).

    Returns:
        {"added": int, "existing": int, "keywords": [TrackedKeyword]}
    """
    metrics = metrics or {}
    existing_rows = {
        k.keyword: k
        for k in db.query(TrackedKeyword).filter(TrackedKeyword.domain_id == domain_id).all()
    }

    added = 0
    existing = 0
    touched: List[TrackedKeyword] = []

    for raw in keywords:
        keyword = normalize_keyword(raw)
        if not keyword:
            continue

        record = existing_rows.get(keyword)
        if record is not None:
            record.is_active = True
            existing += 1
        else:
            record = TrackedKeyword(
                user_id=user_id,
                domain_id=domain_id,
                keyword=keyword,
                category=category,
                is_active=True,
            )
            db.add(record)
            existing_rows[keyword] = record
            added += 1

        for field in METRIC_FIELDS:
            value = (metrics.get(keyword) or {}).get(field)
            if value is not None:
                setattr(record, field, value)
        touched.append(record)

    db.commit()
    logger.info(f"Keyword library for domain {domain_id}: {added} added, {existing} existing")
    return {"added": added, "existing": existing, "keywords": touched}


def update_keyword(db: Session, keyword_id: str, user_id: str, **fields) -> Optional[TrackedKeyword]:
    record = get_keyword(db, keyword_id, user_id)
    if record is None:
        return None

    for key, value in fields.items():
        if key in UPDATABLE_FIELDS and value is not None:
            setattr(record, key, value)
    db.commit()
    return record


def delete_keyword(db: Session, keyword_id: str, user_id: str) -> bool:
    record = get_keyword(db, keyword_id, user_id)
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True


def update_keyword_metrics(db: Session, updates: Dict[str, Dict[str, Any]]) -> int:
    """Write refreshed metrics back to the library, keyed by tracked keyword id."""
    if not updates:
        return 0
    records = db.query(TrackedKeyword).filter(TrackedKeyword.id.in_(list(updates))).all()
    for record in records:
        for field, value in updates[record.id].items():
            if field in METRIC_FIELDS and value is not None:
                setattr(record, field, value)
    db.commit()
    return len(records)


def keyword_to_dict(record: TrackedKeyword) -> Dict[str, Any]:
    return {
        "id": record.id,
        "domainId": record.domain_id,
        "keyword": record.keyword,
        "searchVolume": record.search_volume,
        "cpc": record.cpc,
        "keywordDifficulty": record.keyword_difficulty,
        "searchIntent": record.search_intent,
        "category": record.category,
        "volumeSource": record.volume_source,
        "volumeDate": record.volume_date,
        "isActive": record.is_active,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }
