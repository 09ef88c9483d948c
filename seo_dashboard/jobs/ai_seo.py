"""
AI-SEO analysis job

Asks each LLM platform about the run's keywords, checks whether the
business is mentioned or its domain cited, and turns that into a
visibility score and recommendations.
"""

import logging
from typing import Any, Dict, List, Optional

from ..database.models import Domain
from ..database.operations import ai_seo as ai_seo_ops
from ..database.session import get_db_context
from ..dataforseo.modules.ai_optimization import extract_mention, normalize_platform
from ..dataforseo.service import DataForSEO, create_dataforseo
from .bus import AI_SEO_ANALYSIS_START, bus

logger = logging.getLogger(__name__)

MAX_VOLUME_KEYWORDS = 20
MAX_RESEARCH_KEYWORDS = 10
MENTION_CONTEXT_WINDOW = 200
ANSWER_PREVIEW_LENGTH = 500

MENTION_WEIGHT = 0.6
CITATION_WEIGHT = 0.4

SENTIMENT_SCORES = {"positive": 1.0, "neutral": 0.0, "negative": -1.0}


def visibility_from_rates(mention_rate: float, citation_rate: float) -> int:
    score = (mention_rate * MENTION_WEIGHT + citation_rate * CITATION_WEIGHT) * 100
    return round(min(100, max(0, score)))


def analyze_llm_answer(item: Dict[str, Any], business_name: str, domain: str) -> Dict[str, Any]:
    """Mention, citation and competitor details from one LLM answer item."""
    answer = item.get("answer") or ""
    citations = [
        {"url": c.get("url"), "title": c.get("title"), "domain": c.get("domain") or ""}
        for c in item.get("citations") or []
    ]
    is_cited = any(domain.lower() in c["domain"].lower() for c in citations)

    names = {business_name.lower(), domain.lower()}
    competitors = [
        {"name": b.get("name"), "url": b.get("url"), "type": b.get("type")}
        for b in item.get("brand_mentions") or []
        if b.get("name") and b["name"].lower() not in names
    ]

    mention = extract_mention(answer, business_name, MENTION_CONTEXT_WINDOW)
    if not mention["mentioned"]:
        mention = extract_mention(answer, domain, MENTION_CONTEXT_WINDOW)

    return {
        "aiAnswer": answer,
        "citations": citations,
        "relatedQuestions": item.get("related_questions") or [],
        "competitorMentions": competitors,
        "isMentioned": mention["mentioned"],
        "isCited": is_cited,
        "mentionContext": mention["context"],
        "sentiment": mention["sentiment"],
    }


async def research_platform(
    dfs: DataForSEO,
    platform: str,
    keywords: List[str],
    business_name: str,
    domain: str,
    location_code: int,
    volumes: Dict[str, Dict[str, Any]],
) -> Dict[str, Any]:
    """Query one platform for each keyword. Returns {platformScore, research}."""
    research = []
    mentions = 0
    citations = 0
    impressions = 0

    for keyword in keywords:
        volume = volumes.get(keyword) or {}
        entry: Dict[str, Any] = {
            "keyword": keyword,
            "platform": platform,
            "isMentioned": False,
            "isCited": False,
            "aiSearchVolume": volume.get("ai_search_volume"),
        }
        try:
            response = await dfs.ai.llm_response(platform, keyword, location_code=location_code)
            items = (response or {}).get("items") or []
            if items:
                entry.update(analyze_llm_answer(items[0], business_name, domain))
                if volume.get("impressions"):
                    impressions += volume["impressions"]
            else:
                entry["isMentioned"] = await dfs.ai.domain_mentioned_for_keyword(
                    domain, keyword, platform, location_code=location_code
                )
        except Exception as e:
            logger.error(f"AI research failed for {platform} / '{keyword}': {e}")

        mentions += 1 if entry["isMentioned"] else 0
        citations += 1 if entry["isCited"] else 0
        research.append(entry)

    checked = len(keywords)
    sentiments = [SENTIMENT_SCORES.get(r.get("sentiment"), 0.0) for r in research if r["isMentioned"]]
    return {
        "platformScore": {
            "platform": platform,
            "mentionRate": mentions / checked if checked else 0.0,
            "citationRate": citations / mentions if mentions else 0.0,
            "impressions": impressions,
            "mentionsCount": mentions,
            "sentiment": round(sum(sentiments) / len(sentiments), 2) if sentiments else 0.0,
        },
        "research": research,
    }


def calculate_totals(platform_scores: List[Dict[str, Any]]) -> Dict[str, Any]:
    total_mentions = sum(p["mentionsCount"] for p in platform_scores)
    count = len(platform_scores)
    avg_mention = sum(p["mentionRate"] for p in platform_scores) / count if count else 0.0
    avg_citation = sum(p["citationRate"] for p in platform_scores) / count if count else 0.0
    return {
        "totalMentions": total_mentions,
        "totalCitations": round(avg_citation * total_mentions) if total_mentions else 0,
        "visibilityScore": visibility_from_rates(avg_mention, avg_citation),
        "totalImpressions": sum(p["impressions"] for p in platform_scores),
    }


def _unique(values: List[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    seen = set()
    unique = []
    for value in values:
        if value.get(key) in seen:
            continue
        seen.add(value.get(key))
        unique.append(value)
    return unique


def _unique_strings(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def generate_recommendations(
    research: List[Dict[str, Any]],
    totals: Dict[str, Any],
    business_name: str,
) -> List[Dict[str, str]]:
    recommendations = []

    citations = _unique([c for r in research for c in r.get("citations") or []], "domain")
    questions = _unique_strings([q for r in research for q in r.get("relatedQuestions") or []])[:10]
    competitors = _unique([c for r in research for c in r.get("competitorMentions") or []], "name")

    if citations:
        domains = ", ".join(c["domain"] for c in citations[:5])
        recommendations.append({
            "priority": "high",
            "category": "Citation Opportunities",
            "suggestion": f"AI frequently cites these domains: {domains}. Consider getting backlinks or "
                          f"mentions from these trusted sources to improve your visibility.",
        })

    if questions:
        recommendations.append({
            "priority": "high",
            "category": "Content Opportunities",
            "suggestion": f"Create FAQ content answering these questions AI users ask: "
                          f"{', '.join(questions[:3])}. This content has high potential to be cited.",
        })

    if competitors:
        names = ", ".join(c["name"] for c in competitors[:3])
        recommendations.append({
            "priority": "medium",
            "category": "Competitive Intelligence",
            "suggestion": f"AI frequently recommends these competitors: {names}. Research what makes "
                          f"them visible and apply similar strategies.",
        })

    if totals["visibilityScore"] < 30:
        recommendations.append({
            "priority": "high",
            "category": "Visibility Gap",
            "suggestion": f"{business_name} has low visibility in AI responses ({totals['visibilityScore']}% "
                          f"score). Focus on creating authoritative content that answers common local "
                          f"queries with clear, structured information.",
        })

    if totals["totalCitations"] == 0 and totals["totalMentions"] > 0:
        recommendations.append({
            "priority": "high",
            "category": "Citation Gap",
            "suggestion": "Your business is mentioned but not cited. Add Schema.org markup, clear page "
                          "titles, and ensure content is structured so AI can easily extract and cite "
                          "your information.",
        })

    if totals["totalMentions"] == 0:
        recommendations.append({
            "priority": "high",
            "category": "Complete Visibility Gap",
            "suggestion": f"{business_name} is not appearing in AI responses at all. Start by creating "
                          f"comprehensive service pages and location-specific content, and get listed "
                          f"on authoritative directories.",
        })

        detailed = [r for r in research if len(r.get("aiAnswer") or "") > 100]
        if detailed:
            recommendations.append({
                "priority": "high",
                "category": "Content Strategy",
                "suggestion": f"AI provides detailed answers for {len(detailed)} of your keywords, but "
                              f"doesn't mention {business_name}. Review what AI says and create content "
                              f"that matches that depth and structure.",
            })

    if totals["visibilityScore"] >= 60:
        recommendations.append({
            "priority": "low",
            "category": "Maintenance",
            "suggestion": "Your AI visibility is strong. Continue monitoring, keep content fresh, "
                          "maintain positive reviews, and track competitor mentions.",
        })

    return recommendations


def _save_results(
    run_id: str,
    platform_scores: List[Dict[str, Any]],
    research: List[Dict[str, Any]],
) -> None:
    with get_db_context() as db:
        for score in platform_scores:
            ai_seo_ops.save_ai_seo_result(
                db, run_id, score["platform"], None,
                mention_rate=score["mentionRate"],
                citation_rate=score["citationRate"],
                visibility_score=visibility_from_rates(score["mentionRate"], score["citationRate"]),
                sentiment_score=score["sentiment"],
                impressions=score["impressions"],
                mentions_count=score["mentionsCount"],
                raw_response=dict(score),
            )

        by_keyword: Dict[str, List[Dict[str, Any]]] = {}
        for entry in research:
            by_keyword.setdefault(entry["keyword"], []).append(entry)

        for keyword, entries in by_keyword.items():
            mentioned = sum(1 for e in entries if e["isMentioned"])
            cited = sum(1 for e in entries if e["isCited"])
            mention_rate = mentioned / len(entries)
            citation_rate = cited / mentioned if mentioned else 0.0

            ai_seo_ops.save_ai_seo_result(
                db, run_id, "all", keyword,
                mention_rate=mention_rate,
                citation_rate=citation_rate,
                visibility_score=visibility_from_rates(mention_rate, citation_rate),
                sentiment_score=0.0,
                impressions=sum(e.get("aiSearchVolume") or 0 for e in entries),
                mentions_count=mentioned,
                raw_response={
                    "platforms": [
                        {
                            "platform": e["platform"],
                            "aiAnswer": (e.get("aiAnswer") or "")[:ANSWER_PREVIEW_LENGTH] or None,
                            "citations": e.get("citations"),
                            "relatedQuestions": e.get("relatedQuestions"),
                            "competitorMentions": e.get("competitorMentions"),
                            "isMentioned": e["isMentioned"],
                            "isCited": e["isCited"],
                        }
                        for e in entries
                    ],
                    "aggregated": {
                        "allCitations": _unique([c for e in entries for c in e.get("citations") or []], "url"),
                        "allRelatedQuestions": _unique_strings(
                            [q for e in entries for q in e.get("relatedQuestions") or []]
                        ),
                        "allCompetitors": _unique(
                            [c for e in entries for c in e.get("competitorMentions") or []], "name"
                        ),
                    },
                },
            )

            for e in entries:
                ai_seo_ops.save_ai_seo_result(
                    db, run_id, e["platform"], keyword,
                    mention_rate=1.0 if e["isMentioned"] else 0.0,
                    citation_rate=1.0 if e["isCited"] else 0.0,
                    visibility_score=(100 if e["isCited"] else 60) if e["isMentioned"] else 0,
                    sentiment_score=SENTIMENT_SCORES.get(e.get("sentiment"), 0.0),
                    impressions=e.get("aiSearchVolume") or 0,
                    mentions_count=1 if e["isMentioned"] else 0,
                    mention_context=e.get("mentionContext"),
                    raw_response={
                        "aiAnswer": e.get("aiAnswer"),
                        "citations": e.get("citations"),
                        "relatedQuestions": e.get("relatedQuestions"),
                        "competitorMentions": e.get("competitorMentions"),
                        "mentionContext": e.get("mentionContext"),
                    },
                )


@bus.function(AI_SEO_ANALYSIS_START)
async def run_ai_seo_analysis(data: Dict[str, Any]) -> Dict[str, Any]:
    """Event data: {runId}. Everything else is read from the run."""
    run_id = data["runId"]
    dfs: Optional[DataForSEO] = None

    try:
        with get_db_context() as db:
            run = ai_seo_ops.get_ai_seo_run(db, run_id)
            if run is None:
                raise ValueError(f"AI-SEO run not found: {run_id}")
            record = db.query(Domain).filter(Domain.id == run.domain_id).first()
            domain = data.get("domain") or (record.domain if record else "")
            business_name = run.business_name
            keywords = list(run.keywords or [])
            platforms = [p for p in (normalize_platform(name) for name in run.llm_platforms or []) if p]
            location_code = run.location_code or 2840
            ai_seo_ops.start_ai_seo_run(db, run_id)

        dfs = create_dataforseo()

        try:
            volume_rows = await dfs.ai.ai_keyword_search_volume(
                keywords[:MAX_VOLUME_KEYWORDS], location_code=location_code
            )
        except Exception as e:
            logger.warning(f"AI keyword volume lookup failed for run {run_id}: {e}")
            volume_rows = []
        volumes = {row.get("keyword"): row for row in volume_rows}

        platform_scores = []
        research: List[Dict[str, Any]] = []
        for platform in dict.fromkeys(platforms):
            result = await research_platform(
                dfs, platform, keywords[:MAX_RESEARCH_KEYWORDS], business_name, domain, location_code, volumes
            )
            platform_scores.append(result["platformScore"])
            research.extend(result["research"])

        totals = calculate_totals(platform_scores)
        _save_results(run_id, platform_scores, research)
        recommendations = generate_recommendations(research, totals, business_name)

        with get_db_context() as db:
            ai_seo_ops.complete_ai_seo_run(
                db, run_id,
                visibility_score=totals["visibilityScore"],
                total_mentions=totals["totalMentions"],
                total_citations=totals["totalCitations"],
                recommendations=recommendations,
            )

        return {
            "runId": run_id,
            "visibilityScore": totals["visibilityScore"],
            "totalMentions": totals["totalMentions"],
            "platformResults": platform_scores,
        }

    except Exception as e:
        with get_db_context() as db:
            ai_seo_ops.fail_ai_seo_run(db, run_id, str(e))
        raise
    finally:
        if dfs is not None:
            await dfs.close()
