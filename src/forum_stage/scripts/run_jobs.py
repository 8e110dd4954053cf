# src/forum_stage/scripts/run_jobs.py
"""
Job runner for deferred post action work.

Run it from cron or a process supervisor to:
1. Reopen topics that were closed automatically by flags
2. Deliver hidden-post notices to authors
"""

import argparse
import time

from forum_stage.db.session import SessionLocal
from forum_stage.services.jobs import DEFAULT_HANDLERS, JobScheduler


def run_once() -> int:
    """Execute every due job once and return how many succeeded."""
    db = SessionLocal()
    try:
        return JobScheduler(db).run_due(DEFAULT_HANDLERS)
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run due deferred jobs")
    parser.add_argument(
        "--loop",
        type=float,
        default=0.0,
        help="Keep running, sleeping this many seconds between passes",
    )
    args = parser.parse_args()

    while True:
        succeeded = run_once()
        print(f"Ran {succeeded} deferred job(s)")
        if args.loop <= 0:
            break
        time.sleep(args.loop)


if __name__ == "__main__":
    main()
