"""
Local SEO

Geo-grid rank scanning around a business location, Share of Voice,
competitor aggregation and Google Business Profile comparison.
"""

from .grid_calculator import (
    GridPoint,
    generate_grid_points,
    haversine_distance_miles,
    get_grid_point_count,
    estimate_scan_cost,
    get_grid_bounds,
)
from .grid_scanner import (
    TargetBusiness,
    KeywordScanResult,
    scan_grid_point,
    scan_grid_for_all_keywords,
    calculate_scan_stats,
    calculate_share_of_voice,
)
from .competitor_aggregator import (
    CompetitorStats,
    aggregate_competitor_stats,
    calculate_rank_changes,
    group_by_performance_tier,
    generate_competitive_summary,
)
from .gbp_comparison import (
    MANUAL_CHECK_ITEMS,
    build_comparison_profile,
    identify_gaps,
    generate_recommendations,
    compare_profiles,
)

__all__ = [
    "GridPoint",
    "generate_grid_points",
    "haversine_distance_miles",
    "get_grid_point_count",
    "estimate_scan_cost",
    "get_grid_bounds",
    "TargetBusiness",
    "KeywordScanResult",
    "scan_grid_point",
    "scan_grid_for_all_keywords",
    "calculate_scan_stats",
    "calculate_share_of_voice",
    "CompetitorStats",
    "aggregate_competitor_stats",
    "calculate_rank_changes",
    "group_by_performance_tier",
    "generate_competitive_summary",
    "MANUAL_CHECK_ITEMS",
    "build_comparison_profile",
    "identify_gaps",
    "generate_recommendations",
    "compare_profiles",
]
