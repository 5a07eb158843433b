# scripts/document_expiry_check.py
"""
Logs documents that have expired or will expire soon, across all organisations.
Meant to run from a daily cron.
"""

import argparse
import logging
from datetime import date

from fleetdesk import create_app
from fleetdesk.services.documents import days_until_expiry, expired_documents, expiring_documents

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger("document_expiry")


def main():
    parser = argparse.ArgumentParser(description="Report expired and soon-to-expire documents")
    parser.add_argument("--days", type=int, help="Warning window in days (defaults to DOCUMENT_EXPIRY_WARNING_DAYS)")
    parser.add_argument("--organisation-id", type=int)
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        days = args.days if args.days is not None else app.config["DOCUMENT_EXPIRY_WARNING_DAYS"]
        today = date.today()

        expired = expired_documents(args.organisation_id, today)
        for doc in expired:
            log.warning("EXPIRED org=%s #%s %s (%s) on %s",
                        doc.organisation_id, doc.id, doc.name, doc.category, doc.expiry_date.isoformat())

        expiring = expiring_documents(args.organisation_id, days, today)
        for doc in expiring:
            log.info("Expiring in %s days: org=%s #%s %s (%s)",
                     days_until_expiry(doc, today), doc.organisation_id, doc.id, doc.name, doc.category)

        log.info("Done. expired=%s expiring_within_%s_days=%s", len(expired), days, len(expiring))


if __name__ == "__main__":
    main()
