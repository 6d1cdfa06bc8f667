"""
API entrypoint.

Operator notes:
- Keep this file tiny; configuration is read from the environment / .env
  inside slotkeeper.main.run().
- If startup fails the cause is printed right here.
"""

import logging
import sys

from slotkeeper.main import run


def main() -> None:
    try:
        run()
    except Exception:
        logging.basicConfig(level=logging.ERROR)
        logging.exception("API failed to start.")
        print("\nAPI failed to start.")
        print("   See error above. Most common causes:")
        print("   - Database path/URL invalid (DATABASE_URL or DB_PATH)")
        print("   - Port already in use (PORT)")
        print("   - NOTIFY_WEBHOOK_URL or MANAGE_TOKEN_TTL_DAYS malformed\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
