# scripts/generate_scheduled_work_orders.py
"""
Daily run of every active maintenance schedule.

Usage:
    python -m fleetdesk.scripts.generate_scheduled_work_orders --date 2026-03-01
"""

import argparse
import logging
from datetime import date

from tqdm import tqdm

from fleetdesk import create_app
from fleetdesk.services.work_order_generator import due_schedules, run_schedule, summarize

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger("generate_work_orders")


def main():
    parser = argparse.ArgumentParser(description="Generate work orders from due maintenance schedules")
    parser.add_argument("--date", type=date.fromisoformat, help="Run as if today were this date (YYYY-MM-DD)")
    parser.add_argument("--organisation-id", type=int, help="Only run one organisation's schedules")
    parser.add_argument("--no-progress", action="store_true")
    args = parser.parse_args()

    today = args.date or date.today()
    app = create_app()
    with app.app_context():
        schedules = due_schedules(today, args.organisation_id)
        log.info("Checking %s schedules for %s", len(schedules), today.isoformat())

        results = []
        with tqdm(schedules, disable=args.no_progress, desc="Generating work orders") as pbar:
            for schedule in pbar:
                results.extend(run_schedule(schedule, today))
                pbar.set_postfix(created=sum(1 for r in results if r.status == "created"))

        for r in results:
            if r.status == "error":
                log.error("Schedule %s (%s): %s", r.schedule_id, r.schedule_name, r.reason)
            elif r.status == "created":
                log.info("Schedule %s: created %s for asset %s", r.schedule_id, r.work_order_number, r.asset_id)

        summary = summarize(results)
        log.info("Done. created=%s skipped=%s errors=%s",
                 summary["created"], summary["skipped"], summary["errors"])


if __name__ == "__main__":
    main()
