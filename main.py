#!/usr/bin/env python3
"""
Job Portal auth service - command line entry point.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)


def migrate() -> int:
    """Apply pending SQL migrations to the configured Postgres database."""
    from portal.store.config import load_store_config
    from portal.store.migrate import apply_migrations

    dsn = load_store_config().dsn
    if not dsn:
        print("Postgres is not configured (set POSTGRES_DSN or POSTGRES_HOST/DB/USER/PASSWORD)", file=sys.stderr)
        return 2
    n, versions = apply_migrations(dsn=dsn)
    if n:
        print(f"Applied {n} migration(s): {', '.join(versions)}")
    else:
        print("No pending migrations")
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Job Portal authentication service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Apply database migrations
  python main.py --migrate

  # Run the HTTP server
  python main.py --serve --port 8080
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the auth HTTP server")
    parser.add_argument("--migrate", action="store_true", help="Apply pending database migrations and exit")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    if args.migrate:
        sys.exit(migrate())

    if args.serve:
        from portal.api.server import run

        run(host=args.host, port=args.port)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
