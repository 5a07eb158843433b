# scripts/create_user.py
"""Bootstrap an organisation with its first admin account."""

import argparse
import getpass
import logging

from sqlalchemy import func

from fleetdesk import create_app
from fleetdesk.db_models import db, Organisation, User
from fleetdesk.utils.auth import ROLES

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger("create_user")


def main():
    parser = argparse.ArgumentParser(description="Create an organisation and its admin user")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--organisation", required=True, help="Organisation name (created if missing)")
    parser.add_argument("--password", help="Prompted for when omitted")
    parser.add_argument("--role", default="admin", choices=ROLES)
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        raise SystemExit("Password must be at least 8 characters.")

    app = create_app()
    with app.app_context():
        if db.session.query(User.id).filter(func.lower(User.email) == args.email.lower()).first():
            raise SystemExit(f"A user with email {args.email} already exists.")

        org = db.session.query(Organisation).filter(Organisation.name == args.organisation).first()
        if org is None:
            org = Organisation(name=args.organisation)
            db.session.add(org)
            db.session.flush()
            log.info("Created organisation %s (#%s)", org.name, org.id)

        user = User(organisation_id=org.id, email=args.email.lower(), name=args.name, role=args.role)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        log.info("Created %s user %s (#%s)", user.role, user.email, user.id)


if __name__ == "__main__":
    main()
