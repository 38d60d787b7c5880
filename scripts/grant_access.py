#!/usr/bin/env python3
"""
Manually grant article access (support tooling for failed deliveries or offline payments).

Usage:
    # Record a payment and email the reader an access link
    python grant_access.py --email reader@example.com --article go-basics --reference ticket-1234

    # Print the magic link instead of emailing it
    python grant_access.py --email reader@example.com --article go-basics --reference ticket-1234 --no-email
"""

import argparse
import sys

from paywall.core.errors import PaywallError
from paywall.core.logging import setup_logging
from paywall.db.payment_store import PaymentRecordStore
from paywall.db.redis import get_redis_client
from paywall.db.session import SessionLocal, init_db
from paywall.db.token_store import TokenStore
from paywall.schemas.access import is_valid_article_slug
from paywall.services.access_service import grant_manual_access
from paywall.services.email.registry import create_notifier
from paywall.services.email_service import build_magic_link
from paywall.services.token_service import TokenService


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Grant access to a paid article")
    parser.add_argument("--email", required=True, help="Reader email address")
    parser.add_argument("--article", required=True, help="Article slug")
    parser.add_argument("--reference", required=True, help="Support ticket or offline payment reference")
    parser.add_argument("--no-email", action="store_true", help="Print the link instead of sending it")
    args = parser.parse_args(argv)

    setup_logging()
    if not is_valid_article_slug(args.article):
        print(f"❌ Invalid article slug: {args.article}")
        return 1

    init_db()
    db = SessionLocal()
    try:
        notifier = None if args.no_email else create_notifier()
        token = grant_manual_access(
            args.email,
            args.article,
            args.reference,
            PaymentRecordStore(db),
            TokenService(TokenStore(get_redis_client())),
            notifier=notifier
        )
        print(f"✅ Granted {args.article} to {token.email}")
        print(f"   Expires: {token.expires_at.isoformat()}")
        if args.no_email:
            print(f"   Link: {build_magic_link(token.article_slug, token.token_id)}")
        return 0
    except PaywallError as e:
        print(f"❌ Error: {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
