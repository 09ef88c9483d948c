"""
Keyword Optimization Report

Asks Claude to turn the gathered keyword optimization data into a
structured JSON analysis, then renders it to markdown. When Claude is
unavailable or its reply cannot be parsed, a rule-based default
analysis is used instead.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .claude_client import ClaudeClient
from .keyword_optimization import KeywordOptimizationData

logger = logging.getLogger(__name__)

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

REQUIRED_SECTIONS = [
    "scores",
    "executiveSummary",
    "onPageAnalysis",
    "keywordGaps",
    "competitorInsights",
    "actionItems",
]


def _fmt_number(value: Optional[float]) -> str:
    return f"{value:,}" if value is not None else "N/A"


def _fmt_money(value: Optional[float]) -> str:
    return f"${value:.2f}" if value is not None else "$N/A"


def build_analysis_prompt(url: str, data: KeywordOptimizationData) -> str:
    volume_note = ""
    if data.volume_source == "historical":
        volume_note = (
            f"(Note: Search volume from historical data - {data.historical_date} - "
            "as current data is unavailable for this keyword)"
        )

    competitors = "\n".join(
        f"{i + 1}. {c['domain']} - Position #{c['position']}" for i, c in enumerate(data.top_competitors[:5])
    )
    rankings = "\n".join(
        f"- \"{k['keyword']}\" - Position #{k['position']} "
        f"({_fmt_number(k['searchVolume'])} vol, {_fmt_money(k['cpc'])} CPC)"
        for k in data.ranked_keywords[:15]
    )
    opportunities = "\n".join(
        f"- \"{k['keyword']}\" - {_fmt_number(k['searchVolume'])} vol, "
        f"difficulty {k['difficulty'] if k['difficulty'] is not None else 'N/A'}, intent: {k['intent'] or 'unknown'}"
        for k in data.keyword_opportunities[:15]
    )
    features = data.serp_features
    current_position = data.current_position if data.current_position is not None else "null"

    return f"""You are an expert SEO analyst. Analyze the following data and provide a comprehensive keyword optimization report.

## Target Information
- **URL**: {url}
- **Target Keyword**: "{data.target_keyword}"
- **Search Volume**: {_fmt_number(data.search_volume)} {volume_note}
- **CPC**: {_fmt_money(data.cpc)}
- **Keyword Difficulty**: {data.keyword_difficulty if data.keyword_difficulty is not None else 'N/A'}/100
- **Current SERP Position**: {data.current_position or 'Not ranking in top 20'}
- **Search Intent**: {data.search_intent or 'Unknown'}

## Domain Metrics
- **Domain Rank**: {data.domain_rank if data.domain_rank is not None else 'N/A'}
- **Organic Keywords**: {data.organic_keywords_count:,}
- **Estimated Traffic Value**: ${data.estimated_traffic_value:,.0f}/month
- **Referring Domains**: {data.referring_domains:,}
- **Total Backlinks**: {data.backlinks:,}
- **Spam Score**: {data.spam_score if data.spam_score is not None else 'N/A'}

## SERP Analysis
- **Organic Results**: {features['organicResultsCount']}
- **Has Local Pack**: {'Yes' if features['hasLocalPack'] else 'No'}
- **Has Featured Snippet**: {'Yes' if features['hasFeaturedSnippet'] else 'No'}
- **Has People Also Ask**: {'Yes' if features['hasPeopleAlsoAsk'] else 'No'}

## Top Competitors (SERP)
{competitors}

## Current Keyword Rankings
{rankings}

## Keyword Opportunities
{opportunities}

---

Please provide your analysis in the following JSON format (output ONLY valid JSON, no markdown code blocks):

{{
  "scores": {{
    "overall": <0-100 based on current optimization state>,
    "title": <0-10 estimated based on domain ranking for keyword>,
    "meta": <0-10 estimated>,
    "headings": <0-10 estimated>,
    "content": <0-10 estimated based on ranking data>,
    "internalLinks": <0-10 estimated>
  }},
  "executiveSummary": {{
    "currentPosition": {current_position},
    "primaryOpportunity": "<one sentence about the biggest opportunity>",
    "competitiveGap": "<one sentence about gap to top competitor>",
    "estimatedImpact": "<potential traffic/revenue impact>"
  }},
  "onPageAnalysis": {{
    "strengths": ["<strength 1>", "<strength 2>", ...],
    "weaknesses": ["<weakness 1>", "<weakness 2>", ...],
    "recommendations": ["<specific recommendation 1>", "<specific recommendation 2>", ...]
  }},
  "keywordGaps": [
    {{
      "keyword": "<missing keyword opportunity>",
      "searchVolume": <number or null>,
      "difficulty": <number or null>,
      "priority": "high|medium|low",
      "recommendation": "<specific action to target this keyword>"
    }}
  ],
  "competitorInsights": {{
    "topCompetitor": "<domain of top competitor>",
    "positionGap": <positions behind leader>,
    "keyDifferentiators": ["<what competitors do better>", ...]
  }},
  "actionItems": [
    {{
      "priority": 1,
      "category": "On-Page SEO|Content|Technical|Backlinks",
      "action": "<specific actionable task>",
      "expectedImpact": "<expected result>"
    }}
  ]
}}

Focus on:
1. Practical, actionable recommendations
2. Dental/local service industry best practices
3. Quick wins vs long-term strategies
4. Specific keyword opportunities from the data provided"""


def create_default_report(data: KeywordOptimizationData) -> Dict[str, Any]:
    """Rule-based analysis used when Claude's reply is unusable."""
    top = data.top_competitors[0]["domain"] if data.top_competitors else None
    return {
        "scores": {"overall": 50, "title": 5, "meta": 5, "headings": 5, "content": 5, "internalLinks": 5},
        "executiveSummary": {
            "currentPosition": data.current_position,
            "primaryOpportunity": "Improve keyword targeting and on-page optimization",
            "competitiveGap": f"{top or 'Competitors'} outranks for target keyword",
            "estimatedImpact": "Potential for significant traffic increase with optimization",
        },
        "onPageAnalysis": {
            "strengths": ["Already ranking for related keywords"] if data.ranked_keywords else [],
            "weaknesses": ["Not ranking for target keyword"] if data.current_position is None else [],
            "recommendations": ["Optimize page title for target keyword", "Improve meta description"],
        },
        "keywordGaps": [
            {
                "keyword": k["keyword"],
                "searchVolume": k["searchVolume"],
                "difficulty": k["difficulty"],
                "priority": "medium",
                "recommendation": f'Create or optimize content targeting "{k["keyword"]}"',
            }
            for k in data.keyword_opportunities[:5]
        ],
        "competitorInsights": {
            "topCompetitor": top or "Unknown",
            "positionGap": data.current_position - 1 if data.current_position else 20,
            "keyDifferentiators": ["Higher domain authority", "More comprehensive content"],
        },
        "actionItems": [
            {
                "priority": 1,
                "category": "On-Page SEO",
                "action": "Add target keyword to page title",
                "expectedImpact": "Improved relevance signal",
            }
        ],
    }


def parse_analysis(text: str) -> Optional[Dict[str, Any]]:
    """The JSON object in Claude's reply, or None if missing or incomplete."""
    match = JSON_OBJECT.search(text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict) or any(section not in parsed for section in REQUIRED_SECTIONS):
        return None
    return parsed


def _bullets(items: List[str], empty: str = "- None identified") -> str:
    return "\n".join(f"- {item}" for item in items) or empty


def _actions(items: List[Dict[str, Any]], priority: int, empty: str) -> str:
    lines = [
        f"- **{a.get('category')}**: {a.get('action')} -> *{a.get('expectedImpact')}*"
        for a in items
        if a.get("priority") == priority
    ]
    return "\n".join(lines) or empty


def render_markdown(data: KeywordOptimizationData, analysis: Dict[str, Any]) -> str:
    position = data.current_position
    if position and position <= 3:
        position_note = "Excellent"
    elif position and position <= 10:
        position_note = "Good"
    else:
        position_note = "Needs Improvement"

    difficulty = data.keyword_difficulty
    if difficulty and difficulty < 30:
        difficulty_note = "Easy"
    elif difficulty and difficulty < 60:
        difficulty_note = "Moderate"
    else:
        difficulty_note = "Difficult"

    volume_note = ""
    if data.volume_source == "historical":
        volume_note = f" *(from {data.historical_date} - current data unavailable)*"

    summary = analysis["executiveSummary"]
    scores = analysis["scores"]
    on_page = analysis["onPageAnalysis"]
    insights = analysis["competitorInsights"]
    features = data.serp_features

    gap_rows = "\n".join(
        f"| {k.get('keyword')} | {_fmt_number(k.get('searchVolume'))} | "
        f"{k.get('difficulty') if k.get('difficulty') is not None else 'N/A'} | "
        f"{str(k.get('priority') or '').upper()} | {k.get('recommendation')} |"
        for k in analysis["keywordGaps"][:10]
    )
    ranking_rows = "\n".join(
        f"| {k['keyword']} | #{k['position']} | {_fmt_number(k['searchVolume'])} | {_fmt_money(k['cpc'])} |"
        for k in data.ranked_keywords[:15]
    )
    recommendations = "\n".join(f"{i + 1}. {r}" for i, r in enumerate(on_page.get("recommendations") or []))

    return f"""# Keyword Optimization Audit Report

## Executive Summary

| Metric | Value | Assessment |
|--------|-------|------------|
| **Current Position** | {f'#{position}' if position else 'Not in top 20'} | {position_note} |
| **Search Volume** | {_fmt_number(data.search_volume)}{volume_note} | - |
| **Keyword Difficulty** | {difficulty if difficulty is not None else 'N/A'}/100 | {difficulty_note} |
| **Domain Rank** | {data.domain_rank if data.domain_rank is not None else 'N/A'} | - |
| **Referring Domains** | {data.referring_domains:,} | {'Strong' if data.referring_domains > 100 else 'Building'} |

### Key Findings

- **Primary Opportunity**: {summary.get('primaryOpportunity')}
- **Competitive Gap**: {summary.get('competitiveGap')}
- **Estimated Impact**: {summary.get('estimatedImpact')}

---

## Overall Score: {scores.get('overall')}/100

| Category | Score |
|----------|-------|
| Title Optimization | {scores.get('title')}/10 |
| Meta Description | {scores.get('meta')}/10 |
| Heading Structure | {scores.get('headings')}/10 |
| Content Relevance | {scores.get('content')}/10 |
| Internal Linking | {scores.get('internalLinks')}/10 |

---

## On-Page Analysis

### Strengths
{_bullets(on_page.get('strengths') or [])}

### Weaknesses
{_bullets(on_page.get('weaknesses') or [])}

### Recommendations
{recommendations}

---

## Keyword Gap Analysis

| Keyword | Search Volume | Difficulty | Priority | Action |
|---------|---------------|------------|----------|--------|
{gap_rows}

---

## Competitor Insights

**Top Competitor**: {insights.get('topCompetitor')}
**Position Gap**: {insights.get('positionGap')} positions behind

### Key Differentiators
{_bullets(insights.get('keyDifferentiators') or [])}

---

## Current Keyword Rankings

| Keyword | Position | Search Volume | CPC |
|---------|----------|---------------|-----|
{ranking_rows}

---

## Action Plan

### Immediate (Priority 1)
{_actions(analysis['actionItems'], 1, '- No immediate actions identified')}

### Short-Term (Priority 2)
{_actions(analysis['actionItems'], 2, '- No short-term actions identified')}

### Medium-Term (Priority 3)
{_actions(analysis['actionItems'], 3, '- No medium-term actions identified')}

---

## SERP Features

| Feature | Present |
|---------|---------|
| Local Pack | {'Yes' if features['hasLocalPack'] else 'No'} |
| Featured Snippet | {'Yes' if features['hasFeaturedSnippet'] else 'No'} |
| People Also Ask | {'Yes' if features['hasPeopleAlsoAsk'] else 'No'} |

---

## Cost Summary

**API Cost**: ${data.api_cost:.4f}

---

*Report generated on {datetime.now(timezone.utc).date().isoformat()}*
"""


async def generate_seo_report(
    url: str,
    data: KeywordOptimizationData,
    client: Optional[ClaudeClient] = None,
) -> Dict[str, Any]:
    """
    Structured report plus markdown for a keyword optimization audit.

    Returns the analysis sections with `markdownReport` and `generatedBy`
    ("claude" or "default").
    """
    analysis = None
    try:
        client = client or ClaudeClient()
        response = await client.complete_with_retry(build_analysis_prompt(url, data))
        if response.success:
            analysis = parse_analysis(response.content)
            if analysis is None:
                logger.warning("Claude reply had no usable JSON analysis, using default report")
        else:
            logger.warning(f"Claude report generation failed: {response.error}")
    except ValueError as e:
        # Missing API key
        logger.warning(f"Claude unavailable, using default report: {e}")

    generated_by = "claude" if analysis is not None else "default"
    if analysis is None:
        analysis = create_default_report(data)

    report = {section: analysis[section] for section in REQUIRED_SECTIONS}
    report["markdownReport"] = render_markdown(data, analysis)
    report["generatedBy"] = generated_by
    return report
