#!/usr/bin/env python3
"""
linkgate - sign users in through a hosted identity provider and link a
third-party API key to each of them.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep linkgate imports lazy (inside functions) so `--migrate` does not
# import the web stack.
#


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Identity login and per-user API key linking server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the web server
  python main.py --serve --port 8080

  # Apply pending credential store migrations (Postgres)
  python main.py --migrate
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--migrate", action="store_true", help="Apply pending Postgres migrations and exit")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    try:
        if args.migrate:
            from linkgate.storage.migrate import main as migrate_main

            raise SystemExit(migrate_main())

        if args.serve:
            from linkgate.api.server import run

            run(host=args.host, port=args.port)
            return

        # No arguments provided
        parser.print_help()

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
