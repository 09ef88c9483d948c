"""
Keyword optimization audits, Claude-written reports and preset keywords.
"""

from .keyword_optimization import (
    COST_ESTIMATES,
    KeywordOptimizationData,
    gather_keyword_optimization_data,
)
from .report_generator import (
    build_analysis_prompt,
    create_default_report,
    generate_seo_report,
    parse_analysis,
    render_markdown,
)
from .claude_client import ClaudeClient, ClaudeResponse, TokenUsage
from .preset_keywords import STATE_MAP, DENTAL_KEYWORD_TEMPLATES, generate_preset_keywords, state_options

__all__ = [
    "COST_ESTIMATES",
    "KeywordOptimizationData",
    "gather_keyword_optimization_data",
    "build_analysis_prompt",
    "create_default_report",
    "generate_seo_report",
    "parse_analysis",
    "render_markdown",
    "ClaudeClient",
    "ClaudeResponse",
    "TokenUsage",
    "STATE_MAP",
    "DENTAL_KEYWORD_TEMPLATES",
    "generate_preset_keywords",
    "state_options",
]
