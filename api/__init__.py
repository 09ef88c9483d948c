"""REST API for the SEO dashboard."""
