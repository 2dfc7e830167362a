"""Push pending SIS sync messages. Meant for cron, e.g. every minute.

Run:
  PYTHONPATH=backend python scripts/drain_sync_outbox.py --limit 100
"""

from __future__ import annotations

import argparse
import logging

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.services.sis_client import SisClient
from app.services.sync_outbox import drain_outbox


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--limit", type=int, default=50, help="maximum messages to attempt")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    db = SessionLocal()
    try:
        summary = drain_outbox(db, client=SisClient(settings), limit=max(1, args.limit))
    finally:
        db.close()
    print(
        f"attempted={summary.attempted} delivered={summary.delivered} "
        f"retrying={summary.retrying} failed={summary.failed}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
