"""
Run one scheduled job immediately, outside the API process.

Run: python -m scripts.run_job expired-subscriptions
     python -m scripts.run_job --list
"""
import argparse
import json
import logging
import sys

from konnectsphere.core import config
from konnectsphere.core.logging_config import setup_logging
from konnectsphere.db.session import SessionLocal
from konnectsphere.services.billing_gateway import BillingGateway
from konnectsphere.services.notification_service import NotificationService
from konnectsphere.services.sweeps import build_scheduler

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    scheduler = build_scheduler(SessionLocal, BillingGateway(), NotificationService())

    parser = argparse.ArgumentParser(description="Run a KonnectSphere scheduled job once")
    parser.add_argument("job", nargs="?", choices=scheduler.job_names(), help="Job name")
    parser.add_argument("--list", action="store_true", help="List job names and schedules, then exit")
    args = parser.parse_args(argv)

    if args.list or not args.job:
        for name, info in scheduler.status().items():
            print(f"{name:24} {info['schedule']:22} {info['description']}")
        return 0

    setup_logging(config.LOG_LEVEL)
    try:
        result = scheduler.run_manually(args.job)
    except Exception as e:
        logger.error(f"Job failed: job={args.job}, error={e}")
        return 1

    print(json.dumps({"job": args.job, "result": result}, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
