"""
Housekeeping: prune old audit/login rows and stale rate-limit files.

Usage:
  python scripts/cleanup.py --days 365
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.chms import audit, create_app  # noqa: E402
from app.chms.db import session_scope  # noqa: E402
from app.chms.rate_limiter import rate_limiter_from_config  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Prune audit history and rate-limit state.")
    parser.add_argument("--days", type=int, default=365, help="Audit retention in days.")
    args = parser.parse_args()

    app = create_app()
    with session_scope(app) as s:
        removed = audit.cleanup(s, days_to_keep=args.days)
    files = rate_limiter_from_config(app.config).cleanup()

    print(f"Removed {removed['audit_log']} audit rows and {removed['login_log']} login rows.")
    print(f"Removed {files} stale rate-limit files.")


if __name__ == "__main__":
    main()
