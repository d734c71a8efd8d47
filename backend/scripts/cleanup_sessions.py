"""
Delete aged, expired and revoked refresh sessions (and optionally old audit rows).

Usage: python scripts/cleanup_sessions.py [days] [--revoked-days N] [--audit-days N]

Requires the same environment as the API (REFRESH_TOKEN_SECRET, DATABASE_URL
or POSTGRES_*). Schedule it daily, e.g. from cron.
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError

from fitsession.config import get_settings
from fitsession.core.cipher import TokenCipher
from fitsession.core.database import Database
from fitsession.core.exceptions import ConfigurationError, StoreUnavailableError
from fitsession.services.audit_service import AuditService
from fitsession.services.identity_provider import IdentityProviderClient
from fitsession.services.session_service import SessionService
from fitsession.services.session_store import SqlSessionStore

logger = logging.getLogger("fitsession.cleanup")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clean up refresh sessions")
    parser.add_argument("days", nargs="?", type=int, default=None,
                        help="delete sessions created more than this many days ago")
    parser.add_argument("--revoked-days", type=int, default=None,
                        help="delete revoked sessions revoked more than this many days ago")
    parser.add_argument("--audit-days", type=int, default=None,
                        help="also delete audit events older than this many days")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    for name in ("days", "revoked_days", "audit_days"):
        value = getattr(args, name)
        if value is not None and value < 0:
            print(f"Invalid {name.replace('_', '-')}: must be >= 0", file=sys.stderr)
            return 1

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    settings = get_settings()

    try:
        cipher = TokenCipher(settings.REFRESH_TOKEN_SECRET)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    database = Database.from_settings(settings)
    provider = IdentityProviderClient.from_settings(settings)
    try:
        database.init()
        service = SessionService.from_settings(settings, SqlSessionStore(database), cipher, provider)
        report = service.cleanup_refresh_tokens(args.days, args.revoked_days)
        print(f"Deleted {report.total} session(s) "
              f"(aged out {report.aged_out}, expired {report.expired}, revoked {report.revoked})")

        if args.audit_days is not None:
            threshold = datetime.now(timezone.utc) - timedelta(days=args.audit_days)
            removed = AuditService(database).delete_older_than(threshold)
            print(f"Deleted {removed} audit event(s) older than {args.audit_days} day(s)")
    except StoreUnavailableError as e:
        logger.error("Cleanup failed: %s", e.details.get("detail") or e.message)
        return 2
    except SQLAlchemyError as e:
        logger.error("Cleanup failed: %s", type(e).__name__)
        return 2
    finally:
        provider.close()
        database.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
