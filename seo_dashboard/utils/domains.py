"""
Domain Utilities

Normalization and validation of user-supplied domains and URLs.
Stored domains are always lowercase, without protocol, www. prefix or trailing slash.
"""

import re
from typing import Optional
from urllib.parse import urlparse


DOMAIN_PATTERN = re.compile(
    r"^(?=.{1,253}$)([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)


def normalize_domain(value: Optional[str]) -> str:
    """
    Normalize a domain or URL to its bare hostname.

    "https://www.Example.com/path" -> "example.com"
    """
    if not value:
        return ""

    normalized = value.lower().strip()
    normalized = re.sub(r"^https?://", "", normalized)
    if normalized.startswith("www."):
        normalized = normalized[4:]

    # Drop any path, query or port
    normalized = normalized.split("/")[0].split("?")[0].split(":")[0]
    return normalized.rstrip(".")


def is_valid_domain(value: Optional[str]) -> bool:
    """Check that a normalized domain looks like a registrable hostname."""
    if not value:
        return False
    return bool(DOMAIN_PATTERN.match(value))


def domain_from_url(url: Optional[str]) -> str:
    """Extract the normalized hostname from a full URL."""
    if not url:
        return ""
    try:
        parsed = urlparse(url if "://" in url else f"https://{url}")
    except ValueError:
        return ""
    return normalize_domain(parsed.hostname or "")


def domains_match(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two domains after normalization."""
    left = normalize_domain(a)
    return bool(left) and left == normalize_domain(b)
