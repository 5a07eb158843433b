# fleetdesk/services/documents.py
from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from fleetdesk.db_models import db, Document


def _scoped(organisation_id: Optional[int]):
    query = db.session.query(Document).filter(Document.expiry_date.isnot(None))
    if organisation_id is not None:
        query = query.filter(Document.organisation_id == organisation_id)
    return query


def expiring_documents(organisation_id: Optional[int], within_days: int, today: Optional[date] = None):
    """Documents expiring today or within ``within_days`` days."""
    today = today or date.today()
    return (
        _scoped(organisation_id)
        .filter(Document.expiry_date >= today, Document.expiry_date <= today + timedelta(days=within_days))
        .order_by(Document.expiry_date, Document.id)
        .all()
    )


def expired_documents(organisation_id: Optional[int], today: Optional[date] = None):
    today = today or date.today()
    return (
        _scoped(organisation_id)
        .filter(Document.expiry_date < today)
        .order_by(Document.expiry_date, Document.id)
        .all()
    )


def days_until_expiry(document: Document, today: Optional[date] = None) -> Optional[int]:
    if document.expiry_date is None:
        return None
    return (document.expiry_date - (today or date.today())).days
