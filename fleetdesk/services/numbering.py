# fleetdesk/services/numbering.py
import re

from fleetdesk.db_models import db


def next_sequence_number(model, column, organisation_id, prefix, width=4):
    """
    Next ``PREFIX-0001`` style number for an organisation. Looks at existing
    numbers with the same prefix so hand-entered ones are skipped over.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    highest = 0
    rows = (
        db.session.query(column)
        .filter(model.organisation_id == organisation_id, column.like(f"{prefix}-%"))
        .all()
    )
    for (value,) in rows:
        match = pattern.match(value or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}-{highest + 1:0{width}d}"
