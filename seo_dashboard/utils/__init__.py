"""Utility modules for the SEO dashboard."""

from .config import Settings, get_settings
from .domains import normalize_domain, is_valid_domain, domain_from_url, domains_match

__all__ = [
    "Settings",
    "get_settings",
    "normalize_domain",
    "is_valid_domain",
    "domain_from_url",
    "domains_match",
]
