"""
GBP comparison

Builds comparable Google Business Profile summaries from business info
results, scores completeness, and finds the gaps between the target
business and its local competitors.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

MANUAL_CHECK_ITEMS = [
    {
        "field": "google_posts",
        "label": "Google Posts",
        "description": "Check if competitors post regularly (weekly is ideal for dental practices)",
    },
    {
        "field": "q_and_a",
        "label": "Q&A Section",
        "description": "Check if competitors have answered common patient questions",
    },
    {
        "field": "services",
        "label": "Services Listed",
        "description": "Check if competitors have added their services with descriptions",
    },
    {
        "field": "products",
        "label": "Products Listed",
        "description": "Check if competitors have added products (whitening kits, etc.)",
    },
    {
        "field": "menu",
        "label": "Menu/Services Menu",
        "description": "Check if competitors use the menu feature for pricing",
    },
    {
        "field": "booking_link",
        "label": "Booking Link",
        "description": "Check if competitors have online booking enabled",
    },
]

DENTAL_NAME_KEYWORDS = [
    "dental", "dentist", "dentistry", "orthodontic", "orthodontist", "periodontal",
    "periodontist", "endodontic", "oral", "smile", "tooth", "teeth", "implant",
    "cosmetic", "family", "pediatric",
]

DAYS_OF_WEEK = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# (check id, label, weight)
COMPLETENESS_CHECKS = [
    ("businessName", "Business Name", 15),
    ("address", "Address", 15),
    ("phone", "Phone", 12),
    ("website", "Website", 10),
    ("primaryCategory", "Primary Category", 10),
    ("secondaryCategories", "Secondary Categories", 8),
    ("description", "Description", 8),
    ("hours", "Business Hours", 6),
    ("hoursComplete", "All 7 Days Hours", 4),
    ("photos", "Photos", 5),
    ("photoCount", "20+ Photos", 4),
    ("logo", "Logo", 2),
    ("coverPhoto", "Cover Photo", 2),
    ("attributes", "Attributes", 4),
    ("claimed", "Claimed Profile", 3),
    ("reviews", "Has Reviews", 2),
]
TOTAL_COMPLETENESS_WEIGHT = sum(weight for _, _, weight in COMPLETENESS_CHECKS)

SEVERITY_ORDER = {"critical": 0, "important": 1, "nice-to-have": 2}


def get_completeness_label(score: int) -> str:
    if score >= 86:
        return "Excellent"
    if score >= 71:
        return "Good"
    if score >= 51:
        return "Needs Work"
    return "Poor"


def calculate_completeness(passed: Dict[str, bool]) -> Dict[str, Any]:
    """Weighted completeness from a map of check id to pass/fail."""
    checks = [
        {"id": check_id, "label": label, "weight": weight, "passed": bool(passed.get(check_id))}
        for check_id, label, weight in COMPLETENESS_CHECKS
    ]
    earned = sum(c["weight"] for c in checks if c["passed"])
    score = round(earned / TOTAL_COMPLETENESS_WEIGHT * 100)
    return {"score": score, "maxScore": 100, "label": get_completeness_label(score), "checks": checks}


def analyze_business_name(name: str, keywords: List[str], city: Optional[str]) -> Dict[str, Any]:
    """Whether the business name carries a service keyword and the city."""
    lower = (name or "").lower()
    matched = None

    for keyword in keywords:
        matched = next((w for w in keyword.lower().split() if len(w) > 2 and w in lower), None)
        if matched:
            break
    if matched is None:
        matched = next((w for w in DENTAL_NAME_KEYWORDS if w in lower), None)

    has_city = bool(city) and city.lower() in lower
    return {
        "hasKeyword": matched is not None,
        "hasCity": has_city,
        "matchedKeyword": matched,
        "matchedCity": city if has_city else None,
    }


def parse_attributes(attributes: Optional[Dict[str, Any]]) -> Dict[str, List[str]]:
    available = (attributes or {}).get("available_attributes") or {}
    return {category: values for category, values in available.items() if isinstance(values, list) and values}


def _format_hour(value: Any) -> str:
    if isinstance(value, dict) and value.get("open") and value.get("close"):
        opened, closed = value["open"], value["close"]
        return (
            f"{opened.get('hour') or 0:02d}:{opened.get('minute') or 0:02d}-"
            f"{closed.get('hour') or 0:02d}:{closed.get('minute') or 0:02d}"
        )
    return str(value)


def parse_work_hours(work_hours: Optional[Dict[str, Any]]) -> Dict[str, List[str]]:
    timetable = (work_hours or {}).get("timetable") or {}
    return {
        day.lower(): [_format_hour(h) for h in hours]
        for day, hours in timetable.items()
        if isinstance(hours, list)
    }


def hours_complete(work_hours: Dict[str, List[str]]) -> bool:
    return all(day in work_hours for day in DAYS_OF_WEEK)


@dataclass
class ComparisonProfile:
    business_name: str
    gmb_cid: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    primary_category: Optional[str] = None
    additional_categories: List[str] = field(default_factory=list)
    category_count: int = 0
    name_has_keyword: bool = False
    name_has_city: bool = False
    has_description: bool = False
    description_length: int = 0
    has_phone: bool = False
    has_website: bool = False
    has_address: bool = False
    website: Optional[str] = None
    attributes: Dict[str, List[str]] = field(default_factory=dict)
    attribute_count: int = 0
    has_work_hours: bool = False
    hours_complete: bool = False
    work_hours: Dict[str, List[str]] = field(default_factory=dict)
    photo_count: int = 0
    is_claimed: bool = False
    completeness_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_comparison_profile(info: Dict[str, Any], keywords: List[str], city: Optional[str]) -> ComparisonProfile:
    """Comparable profile from a my_business_info item."""
    name_analysis = analyze_business_name(info.get("title") or "", keywords, city)
    attributes = parse_attributes(info.get("attributes"))
    work_hours = parse_work_hours(info.get("work_hours") or info.get("work_time"))
    complete_hours = hours_complete(work_hours)
    additional = info.get("additional_categories") or []
    rating = info.get("rating") or {}
    photos = info.get("total_photos") or 0
    attribute_count = sum(len(v) for v in attributes.values())

    completeness = calculate_completeness({
        "businessName": bool(info.get("title")),
        "address": bool(info.get("address")),
        "phone": bool(info.get("phone")),
        "website": bool(info.get("url") or info.get("domain")),
        "primaryCategory": bool(info.get("category")),
        "secondaryCategories": bool(additional),
        "description": bool(info.get("description")),
        "hours": bool(work_hours),
        "hoursComplete": complete_hours,
        "photos": photos > 0,
        "photoCount": photos >= 20,
        "logo": bool(info.get("logo")),
        "coverPhoto": bool(info.get("main_image")),
        "attributes": attribute_count > 0,
        "claimed": bool(info.get("is_claimed")),
        "reviews": (rating.get("votes_count") or 0) > 0,
    })

    return ComparisonProfile(
        business_name=info.get("title") or "Unknown",
        gmb_cid=info.get("cid"),
        rating=rating.get("value"),
        review_count=rating.get("votes_count"),
        primary_category=info.get("category"),
        additional_categories=additional,
        category_count=1 + len(additional),
        name_has_keyword=name_analysis["hasKeyword"],
        name_has_city=name_analysis["hasCity"],
        has_description=bool(info.get("description")),
        description_length=len(info.get("description") or ""),
        has_phone=bool(info.get("phone")),
        has_website=bool(info.get("url") or info.get("domain")),
        has_address=bool(info.get("address")),
        website=info.get("url") or info.get("domain"),
        attributes=attributes,
        attribute_count=attribute_count,
        has_work_hours=bool(work_hours),
        hours_complete=complete_hours,
        work_hours=work_hours,
        photo_count=photos,
        is_claimed=bool(info.get("is_claimed")),
        completeness_score=completeness["score"],
    )


def _best(competitors: List[ComparisonProfile], attr: str) -> ComparisonProfile:
    return max(competitors, key=lambda c: getattr(c, attr) or 0)


def _average(competitors: List[ComparisonProfile], attr: str) -> float:
    return sum(getattr(c, attr) or 0 for c in competitors) / len(competitors)


def _gap(field_name, label, severity, your_value, best_name, best_value, average, recommendation) -> Dict[str, Any]:
    return {
        "field": field_name,
        "label": label,
        "severity": severity,
        "yourValue": your_value,
        "competitorBest": {"name": best_name, "value": best_value},
        "competitorAvg": average,
        "recommendation": recommendation,
    }


def identify_gaps(target: ComparisonProfile, competitors: List[ComparisonProfile]) -> List[Dict[str, Any]]:
    """Gaps where the target trails its competitors, most severe first."""
    if not competitors:
        return []

    gaps = []
    n = len(competitors)

    avg_rating = _average(competitors, "rating")
    if target.rating is not None and avg_rating > target.rating + 0.3:
        best = _best(competitors, "rating")
        gaps.append(_gap(
            "rating", "Google Rating", "critical", target.rating, best.business_name, best.rating or 0,
            round(avg_rating, 1),
            "Implement a review generation strategy. Follow up with satisfied patients and make leaving a review easy.",
        ))

    avg_reviews = _average(competitors, "review_count")
    if (target.review_count or 0) < avg_reviews * 0.5:
        best = _best(competitors, "review_count")
        gaps.append(_gap(
            "reviewCount", "Review Count", "critical", target.review_count or 0, best.business_name,
            best.review_count or 0, round(avg_reviews),
            "Actively request reviews from patients. Consider email/SMS follow-ups after appointments.",
        ))

    with_description = [c for c in competitors if c.has_description]
    if not target.has_description and with_description:
        gaps.append(_gap(
            "description", "Business Description", "important", False, with_description[0].business_name, True,
            f"{len(with_description)}/{n} have one",
            "Add a compelling business description highlighting your unique services, experience, and patient care philosophy.",
        ))
    elif target.has_description:
        avg_length = _average(competitors, "description_length")
        if target.description_length < avg_length * 0.5:
            best = _best(competitors, "description_length")
            gaps.append(_gap(
                "descriptionLength", "Description Length", "nice-to-have", target.description_length,
                best.business_name, best.description_length, round(avg_length),
                "Expand your description to include more details about services, technology, and patient experience.",
            ))

    avg_photos = _average(competitors, "photo_count")
    if target.photo_count < 10 or target.photo_count < avg_photos * 0.5:
        best = _best(competitors, "photo_count")
        gaps.append(_gap(
            "photoCount", "Photos", "important" if target.photo_count < 5 else "nice-to-have",
            target.photo_count, best.business_name, best.photo_count, round(avg_photos),
            "Add high-quality photos of your office, team, equipment, and before/after cases (with permission). Aim for 20+ photos.",
        ))

    avg_categories = _average(competitors, "category_count")
    if target.category_count < avg_categories - 1:
        competitor_categories = []
        for c in competitors:
            for category in [c.primary_category] + list(c.additional_categories):
                if category and category not in competitor_categories:
                    competitor_categories.append(category)
        own = {target.primary_category, *target.additional_categories}
        missing = [c for c in competitor_categories if c not in own]
        best = _best(competitors, "category_count")
        gaps.append(_gap(
            "categories", "Categories", "important", target.category_count, best.business_name,
            best.category_count, round(avg_categories),
            f"Consider adding these categories: {', '.join(missing[:3])}",
        ))

    with_hours = [c for c in competitors if c.hours_complete]
    if not target.hours_complete and with_hours:
        gaps.append(_gap(
            "hoursComplete", "Business Hours", "important", False, with_hours[0].business_name, True,
            f"{len(with_hours)}/{n} complete",
            "Add business hours for all 7 days of the week, including closed days.",
        ))

    avg_attributes = _average(competitors, "attribute_count")
    if target.attribute_count < avg_attributes * 0.5:
        own_attributes = {a for values in target.attributes.values() for a in values}
        missing_attributes = []
        for c in competitors:
            for values in c.attributes.values():
                for attribute in values:
                    if attribute not in own_attributes and attribute not in missing_attributes:
                        missing_attributes.append(attribute)
        best = _best(competitors, "attribute_count")
        gaps.append(_gap(
            "attributes", "Profile Attributes", "nice-to-have", target.attribute_count, best.business_name,
            best.attribute_count, round(avg_attributes),
            f"Add attributes like: {', '.join(missing_attributes[:5])}",
        ))

    with_keyword = [c for c in competitors if c.name_has_keyword]
    if not target.name_has_keyword and len(with_keyword) > n / 2:
        gaps.append(_gap(
            "nameHasKeyword", "Business Name Optimization", "nice-to-have", False, with_keyword[0].business_name,
            True, f"{len(with_keyword)}/{n} have keywords",
            'Consider if adding a service keyword to your business name is appropriate (e.g., "Smith Family Dentistry").',
        ))

    gaps.sort(key=lambda g: SEVERITY_ORDER[g["severity"]])
    return gaps


_COMPARISON_FIELDS = [
    # (field, label, category, attribute, higher_is_better)
    ("rating", "Rating", "engagement", "rating", True),
    ("reviewCount", "Review Count", "engagement", "review_count", True),
    ("primaryCategory", "Primary Category", "identity", "primary_category", False),
    ("categoryCount", "Total Categories", "identity", "category_count", True),
    ("hasDescription", "Has Description", "content", "has_description", False),
    ("descriptionLength", "Description Length", "content", "description_length", True),
    ("photoCount", "Photos", "media", "photo_count", True),
    ("hasPhone", "Has Phone", "contact", "has_phone", False),
    ("hasWebsite", "Has Website", "contact", "has_website", False),
    ("hoursComplete", "Hours Complete (All 7 Days)", "contact", "hours_complete", False),
    ("attributeCount", "Attributes Count", "content", "attribute_count", True),
    ("isClaimed", "Profile Claimed", "identity", "is_claimed", False),
    ("completenessScore", "Completeness Score", "identity", "completeness_score", True),
]


def build_comparison_fields(target: ComparisonProfile, competitors: List[ComparisonProfile]) -> List[Dict[str, Any]]:
    """Side-by-side rows for the comparison table."""
    fields = []
    for field_name, label, category, attr, higher_is_better in _COMPARISON_FIELDS:
        value = getattr(target, attr)
        values = [getattr(c, attr) for c in competitors]

        if higher_is_better:
            if attr == "rating" and value is None:
                winning = False
            else:
                winning = (value or 0) >= max([v or 0 for v in values], default=0)
        elif attr in ("primary_category", "is_claimed"):
            winning = bool(value)
        else:
            winning = bool(value) or not any(values)

        row = {
            "field": field_name,
            "label": label,
            "category": category,
            "targetValue": value,
            "competitorValues": [{"name": c.business_name, "value": v} for c, v in zip(competitors, values)],
            "targetWinning": winning,
        }
        if higher_is_better:
            row["higherIsBetter"] = True
        fields.append(row)
    return fields


def generate_recommendations(gaps: List[Dict[str, Any]]) -> List[str]:
    """At most 8 recommendations: gap summaries, the top gap fixes, then general advice."""
    recommendations = []

    critical = [g["label"] for g in gaps if g["severity"] == "critical"]
    important = [g["label"] for g in gaps if g["severity"] == "important"]
    if critical:
        recommendations.append(f"Address {len(critical)} critical gap(s): {', '.join(critical)}")
    if important:
        recommendations.append(f"Improve {len(important)} important area(s): {', '.join(important)}")

    recommendations.extend(g["recommendation"] for g in gaps[:5])

    if not any(g["field"] == "google_posts" for g in gaps):
        recommendations.append("Post weekly updates about promotions, dental tips, or team highlights")
    recommendations.append("Respond to all reviews within 24-48 hours, especially negative ones")

    return recommendations[:8]


def compare_profiles(
    target_info: Dict[str, Any],
    competitor_infos: List[Dict[str, Any]],
    keywords: List[str],
    city: Optional[str],
) -> Dict[str, Any]:
    """Full comparison payload for the gbp-comparison endpoint."""
    target = build_comparison_profile(target_info, keywords, city)
    competitors = [build_comparison_profile(info, keywords, city) for info in competitor_infos]
    gaps = identify_gaps(target, competitors)

    return {
        "target": target.to_dict(),
        "competitors": [c.to_dict() for c in competitors],
        "scores": {
            "target": target.completeness_score,
            "targetLabel": get_completeness_label(target.completeness_score),
            "competitorAvg": round(_average(competitors, "completeness_score")) if competitors else None,
        },
        "fields": build_comparison_fields(target, competitors) if competitors else [],
        "gaps": gaps,
        "recommendations": generate_recommendations(gaps),
        "manualChecks": MANUAL_CHECK_ITEMS,
    }
