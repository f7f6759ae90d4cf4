"""Maintenance commands for the OAuth token database.

Example usages::

    python -m scripts.manage_tokens init
    python -m scripts.manage_tokens cleanup
    python -m scripts.manage_tokens revoke --user-id default_user
"""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys

from pydantic import ValidationError

from eventra.core.config import AppSettings, get_settings
from eventra.core.logging import configure_logging
from eventra.dependencies import get_credential_manager, get_token_store

logger = logging.getLogger("eventra.scripts.manage_tokens")

EXIT_OK = 0
EXIT_FAILURE = 1


def _init(settings: AppSettings, _args: argparse.Namespace) -> int:
    try:
        get_token_store().ensure_schema()
    except (sqlite3.Error, OSError) as exc:
        if settings.is_production:
            logger.critical("Database initialization failed: %s", exc)
            return EXIT_FAILURE
        logger.warning("Database initialization failed (%s); continuing in development", exc)
        return EXIT_OK
    print(f"Token database ready at {settings.database_path}")
    return EXIT_OK


def _cleanup(_settings: AppSettings, _args: argparse.Namespace) -> int:
    removed = get_credential_manager().cleanup()
    print(f"Removed {removed} expired token record(s).")
    return EXIT_OK


def _revoke(_settings: AppSettings, args: argparse.Namespace) -> int:
    result = get_credential_manager().invalidate(args.user_id)
    if result.faulted:
        logger.error("Could not revoke tokens for %s: %s", args.user_id, result.error)
        return EXIT_FAILURE
    if result.found:
        print(f"Revoked stored tokens for {args.user_id}.")
    else:
        print(f"No stored tokens for {args.user_id}.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage Eventra's OAuth token database.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create or migrate the token schema.")
    init_parser.set_defaults(handler=_init)

    cleanup_parser = subparsers.add_parser(
        "cleanup", help="Delete expired records that cannot be refreshed."
    )
    cleanup_parser.set_defaults(handler=_cleanup)

    revoke_parser = subparsers.add_parser("revoke", help="Delete one user's stored tokens.")
    revoke_parser.add_argument("--user-id", required=True)
    revoke_parser.set_defaults(handler=_revoke)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging()
    try:
        settings = get_settings()
    except ValidationError as exc:
        logger.critical("Missing or invalid configuration:\n%s", exc)
        return EXIT_FAILURE
    return args.handler(settings, args)


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
