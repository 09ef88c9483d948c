"""
Database operations, one module per tool.

Every function takes the session first and commits its own writes.
"""

from . import ai_seo, archive, audits, domains, gbp, keyword_audits, keyword_tracking, keywords, local_campaigns

__all__ = [
    "ai_seo",
    "archive",
    "audits",
    "domains",
    "gbp",
    "keyword_audits",
    "keyword_tracking",
    "keywords",
    "local_campaigns",
]
