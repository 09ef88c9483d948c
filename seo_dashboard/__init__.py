"""
SEO Audit Dashboard

Backend for an SEO audit and reporting dashboard that:
1. Requests audit data from the DataForSEO API (SERP, Labs, Backlinks, OnPage, Business)
2. Runs multi-step audits, keyword tracking, geo-grid scans and AI visibility checks as background jobs
3. Persists normalized results for the reporting UI
4. Serves everything through a JSON REST API
"""

__version__ = "0.1.0"
