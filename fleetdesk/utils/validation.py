# fleetdesk/utils/validation.py
from datetime import date, datetime
from typing import Optional, Type, TypeVar

from flask import abort, request
from pydantic import BaseModel, ValidationError

from fleetdesk.errors import ValidationFailed

M = TypeVar("M", bound=BaseModel)


def flatten_errors(exc: ValidationError) -> list[dict]:
    # ctx may hold exception objects that jsonify cannot encode
    return [
        {"field": ".".join(str(p) for p in err["loc"]) or "body", "message": err["msg"]}
        for err in exc.errors()
    ]


def _payload():
    return request.get_json(silent=True) or request.form.to_dict() or {}


def parse_body(schema: Type[M]) -> M:
    data = _payload()
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed("Invalid request body", flatten_errors(e))


def parse_date_arg(name: str) -> Optional[date]:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return datetime.strptime(raw[:10], "%Y-%m-%d").date()
    except ValueError:
        abort(400, description=f"{name} must be a YYYY-MM-DD date")
