#!/usr/bin/env python3
"""
Audit Runner

Creates an audit for the development user and runs the full audit job
in-process, without the API server.

Usage:
    # Set environment variables first:
    export DATAFORSEO_LOGIN=your_login
    export DATAFORSEO_PASSWORD=your_password

    python scripts/trigger_audit.py example.com
    python scripts/trigger_audit.py example.com --city Austin --state TX --keyword "plumber austin"
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def trigger_audit(args: argparse.Namespace) -> int:
    load_dotenv()

    from seo_dashboard.auth.config import get_auth_config
    from seo_dashboard.auth.models import User, UserRole
    from seo_dashboard.database.operations import audits as audit_ops
    from seo_dashboard.database.session import get_db_context, init_db
    from seo_dashboard.jobs import AUDIT_REQUESTED, bus
    from seo_dashboard.utils.domains import is_valid_domain

    if not is_valid_domain(args.domain):
        logger.error(f"Invalid domain: {args.domain}")
        return 1

    init_db()
    email = args.email or get_auth_config().dev_user_email

    with get_db_context() as db:
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            user = User(email=email, name="CLI User", role=UserRole.ADMIN, is_active=True)
            db.add(user)
            db.commit()

        audit = audit_ops.create_audit(
            db,
            user_id=user.id,
            domain=args.domain,
            business_name=args.business,
            city=args.city,
            state=args.state,
            target_keywords=args.keyword or [],
            competitor_domains=args.competitor or [],
        )
        audit_id = audit.id

    logger.info(f"Running audit {audit_id} for {args.domain}")
    await bus.run(AUDIT_REQUESTED, {"auditId": audit_id, "options": {"skipCache": args.skip_cache}})

    with get_db_context() as db:
        audit = audit_ops.get_audit(db, audit_id)
        summary = audit_ops.audit_summary(audit)

    print(json.dumps(summary, indent=2, default=str))
    return 0 if summary.get("status") == "COMPLETED" else 1


def main():
    parser = argparse.ArgumentParser(description="Run an SEO audit from the command line")
    parser.add_argument("domain", help="Domain to audit")
    parser.add_argument("--email", help="Owner email (defaults to DEV_USER_EMAIL)")
    parser.add_argument("--business", help="Business name")
    parser.add_argument("--city")
    parser.add_argument("--state")
    parser.add_argument("--keyword", action="append", help="Target keyword (repeatable)")
    parser.add_argument("--competitor", action="append", help="Competitor domain (repeatable)")
    parser.add_argument("--skip-cache", action="store_true", help="Bypass the DataForSEO cache")
    args = parser.parse_args()

    sys.exit(asyncio.run(trigger_audit(args)))


if __name__ == "__main__":
    main()
