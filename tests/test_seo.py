"""
Tests for the keyword optimization audit: preset keywords, data
gathering, the Claude client and report generation.
"""

import json
import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock, AsyncMock, patch

import anthropic
import httpx

from seo_dashboard.dataforseo.errors import DataForSEOError
from seo_dashboard.dataforseo.modules.labs import LabsModule
from seo_dashboard.dataforseo.modules.serp import SerpModule
from seo_dashboard.seo.claude_client import ClaudeClient, ClaudeResponse, TokenUsage
from seo_dashboard.seo.keyword_optimization import (
    KeywordOptimizationData,
    gather_keyword_optimization_data,
)
from seo_dashboard.seo.preset_keywords import generate_preset_keywords, state_options
from seo_dashboard.seo.report_generator import (
    build_analysis_prompt,
    create_default_report,
    generate_seo_report,
    parse_analysis,
    render_markdown,
)


# ============================================================================
# Helpers
# ============================================================================

def _analysis() -> dict:
    return {
        "scores": {"overall": 72, "title": 8, "meta": 6, "headings": 7, "content": 7, "internalLinks": 5},
        "executiveSummary": {
            "currentPosition": 2,
            "primaryOpportunity": "Win the featured snippet",
            "competitiveGap": "rivalplumbing.com holds position 1",
            "estimatedImpact": "+30% clicks",
        },
        "onPageAnalysis": {
            "strengths": ["Ranks on page one"],
            "weaknesses": ["Thin service copy"],
            "recommendations": ["Add an FAQ section"],
        },
        "keywordGaps": [
            {"keyword": "emergency plumber austin", "searchVolume": 480, "difficulty": 28,
             "priority": "high", "recommendation": "Build an emergency service page"},
        ],
        "competitorInsights": {
            "topCompetitor": "rivalplumbing.com",
            "positionGap": 1,
            "keyDifferentiators": ["More reviews"],
        },
        "actionItems": [
            {"priority": 1, "category": "Content", "action": "Add FAQ schema", "expectedImpact": "Snippet eligibility"},
            {"priority": 2, "category": "Backlinks", "action": "Local citations", "expectedImpact": "Authority"},
        ],
    }


def _gathered() -> KeywordOptimizationData:
    data = KeywordOptimizationData(target_keyword="plumber austin", domain="example.com")
    data.current_position = 2
    data.search_volume = 1300
    data.keyword_difficulty = 35
    data.top_competitors = [{"domain": "rivalplumbing.com", "position": 1, "title": "Rival"}]
    data.ranked_keywords = [
        {"keyword": "plumber austin", "position": 2, "searchVolume": 1300, "cpc": 12.5, "url": "https://example.com/"},
    ]
    data.keyword_opportunities = [
        {"keyword": "emergency plumber austin", "searchVolume": 480, "cpc": 20.0,
         "difficulty": 28, "intent": "transactional"},
    ]
    return data


# ============================================================================
# Preset Keywords
# ============================================================================

class TestPresetKeywords:
    """Tests for the dental keyword templates."""

    def test_state_options_labels(self):
        options = state_options()

        assert options[0] == {"value": "AL", "label": "AL - Alabama"}
        assert {"value": "TX", "label": "TX - Texas"} in options
        assert {"value": "DC", "label": "DC - District Of Columbia"} in options

    def test_generates_lowercase_keywords(self):
        keywords = generate_preset_keywords("Austin", "TX")

        assert "dentist in austin texas" in keywords
        assert "emergency dentist austin medicaid" in keywords
        assert all(k == k.lower() for k in keywords)

    def test_keywords_are_unique(self):
        keywords = generate_preset_keywords(" Austin ", "tx")

        assert len(keywords) == len(set(keywords))
        assert "dentist in austin texas" in keywords

    def test_unknown_state_uses_abbreviation(self):
        keywords = generate_preset_keywords("Springfield", "ZZ")

        assert "dentist in springfield zz" in keywords


# ============================================================================
# Data Gathering
# ============================================================================

@pytest.fixture
def optimization_dfs(mock_dataforseo, make_response, organic_items):
    """DataForSEO facade answering every keyword optimization call."""
    dfs = mock_dataforseo
    dfs.labs.ranked_keywords = AsyncMock(return_value=[
        {
            "keyword_data": {"keyword": "plumber austin", "keyword_info": {"search_volume": 1300, "cpc": 12.5}},
            "ranked_serp_element": {"serp_item": {"rank_group": 2, "url": "https://www.example.com/services"}},
        },
    ])
    dfs.serp.google_organic_raw = AsyncMock(return_value=make_response({"items": organic_items}))
    dfs.serp.extract_items = SerpModule.extract_items
    dfs.labs.bulk_keyword_difficulty = AsyncMock(return_value=[{"keyword_difficulty": 35}])
    dfs.labs.search_intent = AsyncMock(return_value=[{"keyword_intent": {"label": "commercial"}}])
    dfs.keywords.search_volume = AsyncMock(return_value=[])
    dfs.labs.historical_keyword_data = AsyncMock(return_value=[])
    dfs.backlinks.summary = AsyncMock(return_value={
        "referring_domains": 40, "backlinks": 900, "backlinks_spam_score": 3,
    })
    dfs.labs.domain_rank_overview = AsyncMock(return_value={
        "items": [{"metrics": {"organic": {"count": 120, "pos_1": 3, "pos_2_3": 4, "pos_4_10": 10, "etv": 540.0}}}],
    })
    dfs.labs.keyword_suggestions = AsyncMock(return_value=[
        {
            "keyword": "emergency plumber austin",
            "keyword_info": {"search_volume": 480, "cpc": 20.0},
            "keyword_properties": {"keyword_difficulty": 28},
            "search_intent_info": {"main_intent": "transactional"},
        },
    ])
    return dfs


class TestGatherKeywordOptimizationData:
    """Tests for gather_keyword_optimization_data."""

    @pytest.mark.asyncio
    async def test_gathers_all_steps(self, optimization_dfs):
        data = await gather_keyword_optimization_data(
            optimization_dfs, "https://www.example.com/services", "plumber austin"
        )

        assert data.domain == "example.com"
        assert data.failed_steps == []
        assert data.current_position == 2
        assert data.serp_features == {
            "hasLocalPack": True,
            "hasFeaturedSnippet": True,
            "hasPeopleAlsoAsk": False,
            "organicResultsCount": 3,
        }
        assert [c["domain"] for c in data.top_competitors] == ["rivalplumbing.com", "www.example.com", "yelp.com"]
        assert data.keyword_difficulty == 35
        assert data.search_intent == "commercial"
        assert data.referring_domains == 40
        assert data.spam_score == 3
        assert data.domain_rank == 70
        assert data.organic_keywords_count == 120
        assert data.keyword_opportunities[0]["difficulty"] == 28
        assert data.api_cost == pytest.approx(0.075)

    @pytest.mark.asyncio
    async def test_volume_taken_from_ranked_keywords(self, optimization_dfs):
        data = await gather_keyword_optimization_data(
            optimization_dfs, "https://example.com/", "Plumber Austin"
        )

        assert data.search_volume == 1300
        assert data.cpc == 12.5
        assert data.volume_source == "current"
        optimization_dfs.keywords.search_volume.assert_not_called()

    @pytest.mark.asyncio
    async def test_historical_volume_fallback(self, optimization_dfs):
        optimization_dfs.labs.ranked_keywords.return_value = []
        optimization_dfs.keywords.search_volume.return_value = [{"search_volume": None}]
        optimization_dfs.labs.keyword_suggestions.return_value = []
        optimization_dfs.labs.historical_keyword_data.return_value = [
            {
                "keyword": "dentist austin",
                "history": [
                    {"year": 2024, "month": 6, "keyword_info": {"search_volume": None}},
                    {"year": 2024, "month": 5, "keyword_info": {"search_volume": 2400, "cpc": 9.1}},
                ],
            },
        ]

        data = await gather_keyword_optimization_data(
            optimization_dfs, "https://example.com/", "dentist austin"
        )

        assert data.search_volume == 2400
        assert data.cpc == 9.1
        assert data.volume_source == "historical"
        assert data.historical_date == "2024-05"

    @pytest.mark.asyncio
    async def test_failed_steps_are_recorded(self, mock_dataforseo):
        error = AsyncMock(side_effect=DataForSEOError("Service unavailable", status_code=50000))
        dfs = mock_dataforseo
        dfs.labs.ranked_keywords = error
        dfs.serp.google_organic_raw = error
        dfs.labs.bulk_keyword_difficulty = error
        dfs.keywords.search_volume = error
        dfs.backlinks.summary = error
        dfs.labs.domain_rank_overview = error
        dfs.labs.keyword_suggestions = error

        data = await gather_keyword_optimization_data(dfs, "https://example.com/", "plumber austin")

        assert data.failed_steps == [
            "ranked_keywords",
            "serp",
            "keyword_metrics",
            "search_volume",
            "backlinks",
            "domain_rank",
            "keyword_suggestions",
        ]
        assert data.api_cost == 0
        assert data.current_position is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(200, content=b"<html>gateway</html>"),
        httpx.Response(200, json=["not", "an", "envelope"]),
    ])
    async def test_malformed_provider_response_fails_one_step(
        self, optimization_dfs, fast_general_limiter, transport_client, response
    ):
        calls = []

        def handler(request):
            calls.append(request)
            return response

        client = transport_client(handler)
        optimization_dfs.labs.ranked_keywords = LabsModule(client).ranked_keywords

        data = await gather_keyword_optimization_data(
            optimization_dfs, "https://www.example.com/services", "plumber austin"
        )
        await client.close()

        assert data.failed_steps == ["ranked_keywords"]
        assert data.ranked_keywords == []
        assert len(calls) == 1
        assert data.current_position == 2
        assert data.domain_rank == 70
        assert data.referring_domains == 40

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_one_step(self, optimization_dfs):
        optimization_dfs.backlinks.summary = AsyncMock(side_effect=AttributeError("'list' object has no attribute 'get'"))

        data = await gather_keyword_optimization_data(
            optimization_dfs, "https://www.example.com/services", "plumber austin"
        )

        assert data.failed_steps == ["backlinks"]
        assert data.referring_domains == 0
        assert data.domain_rank == 70


# ============================================================================
# Claude Client
# ============================================================================

def _message(text: str = "hello") -> SimpleNamespace:
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=1000, output_tokens=200),
        stop_reason="end_turn",
    )


class TestClaudeClient:
    """Tests for ClaudeClient."""

    def test_token_usage_cost(self):
        usage = TokenUsage(input_tokens=1_000_000, output_tokens=1_000_000)

        assert usage.total_tokens == 2_000_000
        assert usage.estimated_cost == pytest.approx(18.0)

    def test_requires_api_key(self):
        settings = MagicMock(ANTHROPIC_API_KEY=None, CLAUDE_MODEL="claude-test")
        with patch("seo_dashboard.seo.claude_client.get_settings", return_value=settings):
            with pytest.raises(ValueError):
                ClaudeClient()

    @pytest.mark.asyncio
    async def test_complete_tracks_usage(self):
        client = ClaudeClient(api_key="test-key", model="claude-test")
        client.async_client = MagicMock()
        client.async_client.messages.create = AsyncMock(return_value=_message("hello"))

        response = await client.complete("prompt", system="be brief")

        assert response.success is True
        assert response.content == "hello"
        assert response.model == "claude-test"
        assert client.get_usage_summary()["total_calls"] == 1
        assert client.get_usage_summary()["input_tokens"] == 1000
        kwargs = client.async_client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be brief"

    @pytest.mark.asyncio
    async def test_api_error_returns_failure(self):
        client = ClaudeClient(api_key="test-key", model="claude-test")
        client.async_client = MagicMock()
        error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        client.async_client.messages.create = AsyncMock(side_effect=error)

        response = await client.complete("prompt")

        assert response.success is False
        assert response.stop_reason == "error"
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_retry_after_failure(self):
        client = ClaudeClient(api_key="test-key", model="claude-test")
        client.async_client = MagicMock()
        error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        client.async_client.messages.create = AsyncMock(side_effect=[error, _message("second try")])

        with patch("seo_dashboard.seo.claude_client.asyncio.sleep", new=AsyncMock()) as sleep:
            response = await client.complete_with_retry("prompt")

        assert response.success is True
        assert response.content == "second try"
        sleep.assert_awaited_once_with(2)


# ============================================================================
# Report Generation
# ============================================================================

class TestParseAnalysis:
    """Tests for parse_analysis."""

    def test_extracts_json_from_surrounding_text(self):
        text = f"Here is the report:\n{json.dumps(_analysis())}\nLet me know."

        assert parse_analysis(text)["scores"]["overall"] == 72

    def test_missing_section_rejected(self):
        analysis = _analysis()
        del analysis["actionItems"]

        assert parse_analysis(json.dumps(analysis)) is None

    def test_invalid_json_rejected(self):
        assert parse_analysis("{not json}") is None

    def test_no_json_rejected(self):
        assert parse_analysis("I cannot help with that.") is None
        assert parse_analysis("") is None


class TestDefaultReport:
    """Tests for the rule-based fallback analysis."""

    def test_not_ranking(self):
        data = KeywordOptimizationData(target_keyword="plumber austin", domain="example.com")
        data.top_competitors = [{"domain": "rivalplumbing.com", "position": 1, "title": ""}]

        report = create_default_report(data)

        assert report["scores"]["overall"] == 50
        assert report["executiveSummary"]["competitiveGap"] == "rivalplumbing.com outranks for target keyword"
        assert report["onPageAnalysis"]["weaknesses"] == ["Not ranking for target keyword"]
        assert report["onPageAnalysis"]["strengths"] == []
        assert report["competitorInsights"]["positionGap"] == 20

    def test_ranking(self):
        report = create_default_report(_gathered())

        assert report["competitorInsights"]["positionGap"] == 1
        assert report["onPageAnalysis"]["weaknesses"] == []
        assert report["keywordGaps"][0]["keyword"] == "emergency plumber austin"

    def test_no_competitors(self):
        data = KeywordOptimizationData(target_keyword="plumber austin", domain="example.com")

        report = create_default_report(data)

        assert report["competitorInsights"]["topCompetitor"] == "Unknown"
        assert report["executiveSummary"]["competitiveGap"] == "Competitors outranks for target keyword"


class TestRendering:
    """Tests for the prompt and markdown rendering."""

    def test_prompt_includes_target(self):
        data = _gathered()
        data.current_position = None
        data.volume_source = "historical"
        data.historical_date = "2024-05"

        prompt = build_analysis_prompt("https://example.com/", data)

        assert '"plumber austin"' in prompt
        assert "Not ranking in top 20" in prompt
        assert "historical data - 2024-05" in prompt
        assert '"currentPosition": null' in prompt

    def test_markdown_sections(self):
        markdown = render_markdown(_gathered(), _analysis())

        assert markdown.startswith("# Keyword Optimization Audit Report")
        assert "| **Current Position** | #2 | Excellent |" in markdown
        assert "## Overall Score: 72/100" in markdown
        assert "| emergency plumber austin | 480 | 28 | HIGH |" in markdown
        assert "- **Content**: Add FAQ schema -> *Snippet eligibility*" in markdown
        assert "- No medium-term actions identified" in markdown

    def test_markdown_not_ranking(self):
        data = _gathered()
        data.current_position = None

        markdown = render_markdown(data, create_default_report(data))

        assert "Not in top 20" in markdown
        assert "Needs Improvement" in markdown


class TestGenerateSeoReport:
    """Tests for generate_seo_report."""

    @pytest.mark.asyncio
    async def test_uses_claude_analysis(self):
        client = MagicMock()
        client.complete_with_retry = AsyncMock(return_value=ClaudeResponse(
            content=json.dumps(_analysis()),
            usage=TokenUsage(input_tokens=100, output_tokens=50),
            model="claude-test",
            stop_reason="end_turn",
        ))

        report = await generate_seo_report("https://example.com/", _gathered(), client=client)

        assert report["generatedBy"] == "claude"
        assert report["scores"]["overall"] == 72
        assert "## Overall Score: 72/100" in report["markdownReport"]

    @pytest.mark.asyncio
    async def test_default_without_api_key(self):
        with patch("seo_dashboard.seo.report_generator.ClaudeClient", side_effect=ValueError("no key")):
            report = await generate_seo_report("https://example.com/", _gathered())

        assert report["generatedBy"] == "default"
        assert report["scores"]["overall"] == 50
        assert "markdownReport" in report

    @pytest.mark.asyncio
    async def test_default_when_call_fails(self):
        client = MagicMock()
        client.complete_with_retry = AsyncMock(return_value=ClaudeResponse(
            content="", usage=TokenUsage(), model="claude-test",
            stop_reason="error", success=False, error="overloaded",
        ))

        report = await generate_seo_report("https://example.com/", _gathered(), client=client)

        assert report["generatedBy"] == "default"

    @pytest.mark.asyncio
    async def test_default_when_reply_unparseable(self):
        client = MagicMock()
        client.complete_with_retry = AsyncMock(return_value=ClaudeResponse(
            content="Sorry, no JSON today.", usage=TokenUsage(), model="claude-test", stop_reason="end_turn",
        ))

        report = await generate_seo_report("https://example.com/", _gathered(), client=client)

        assert report["generatedBy"] == "default"
        assert set(report) >= {"scores", "executiveSummary", "actionItems", "markdownReport"}
