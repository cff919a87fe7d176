"""
Drain the Pending delivery queue through the configured email/SMS gateways.

Run from cron or a worker loop:
  python scripts/send_communications.py --limit 200
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.chms import create_app  # noqa: E402
from app.chms.db import session_scope  # noqa: E402
from app.chms.modules.communications.email_gateway import email_gateway_from_config  # noqa: E402
from app.chms.modules.communications.service import deliver_pending  # noqa: E402
from app.chms.modules.communications.sms_gateway import sms_gateway_from_config  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Deliver pending communications.")
    parser.add_argument("--limit", type=int, default=100, help="Max deliveries to process in one run.")
    args = parser.parse_args()

    app = create_app()
    with session_scope(app) as s:
        counts = deliver_pending(
            s,
            email_gateway=email_gateway_from_config(app.config),
            sms_gateway=sms_gateway_from_config(app.config),
            limit=args.limit,
        )
    print(f"Processed {counts['processed']} deliveries ({counts['sent']} sent, {counts['failed']} failed).")


if __name__ == "__main__":
    main()
