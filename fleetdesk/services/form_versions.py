# fleetdesk/services/form_versions.py
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func

from fleetdesk.db_models import db, utcnow, CustomForm, CustomFormVersion
from fleetdesk.services.audit import record_audit

log = logging.getLogger(__name__)


class PublishError(ValueError):
    pass


@dataclass(frozen=True)
class PublishResult:
    form: CustomForm
    version: CustomFormVersion


@dataclass(frozen=True)
class RollbackResult:
    form: CustomForm
    version: CustomFormVersion
    rolled_back_from: int
    rolled_back_to: int


def next_version_number(form_id: int) -> int:
    current = (
        db.session.query(func.max(CustomFormVersion.version))
        .filter(CustomFormVersion.form_id == form_id)
        .scalar()
    )
    return (current or 0) + 1


def latest_version(form_id: int) -> Optional[CustomFormVersion]:
    return (
        db.session.query(CustomFormVersion)
        .filter(CustomFormVersion.form_id == form_id)
        .order_by(CustomFormVersion.version.desc())
        .first()
    )


def publish_form(form: CustomForm, user_id: Optional[int], changelog: Optional[str] = None) -> PublishResult:
    """
    Freeze the live definition into a new version row.

    The snapshot is a deep copy so later edits to ``form.fields`` can never
    reach a published version. A draft form becomes active. Nothing is
    committed here; the unique (form_id, version) constraint makes a
    concurrent publish fail at commit time.
    """
    if not form.fields:
        raise PublishError("Cannot publish a form with no fields")
    if form.status == "archived":
        raise PublishError("Cannot publish an archived form")

    number = next_version_number(form.id)
    version = CustomFormVersion(
        form_id=form.id,
        version=number,
        name=form.name,
        description=form.description,
        fields=copy.deepcopy(form.fields),
        settings=copy.deepcopy(form.settings or {}),
        changelog=changelog,
        published_by_id=user_id,
        published_at=utcnow(),
    )
    db.session.add(version)

    old_status = form.status
    form.current_version = number
    if form.status == "draft":
        form.status = "active"

    record_audit(
        form.organisation_id, user_id, "publish", "custom_form", form.id,
        old_values={"status": old_status},
        new_values={"status": form.status, "version": number, "changelog": changelog},
    )
    log.info("Published form %s as version %s", form.id, number)
    return PublishResult(form=form, version=version)


def rollback_form(form: CustomForm, target_version: int, user_id: Optional[int]) -> RollbackResult:
    """Publish a copy of ``target_version`` as the newest version and restore the live definition."""
    target = (
        db.session.query(CustomFormVersion)
        .filter(CustomFormVersion.form_id == form.id, CustomFormVersion.version == target_version)
        .first()
    )
    if target is None:
        raise LookupError(f"Version {target_version} not found")

    rolled_back_from = form.current_version
    number = next_version_number(form.id)
    version = CustomFormVersion(
        form_id=form.id,
        version=number,
        name=target.name,
        description=target.description,
        fields=copy.deepcopy(target.fields),
        settings=copy.deepcopy(target.settings or {}),
        changelog=f"Rolled back to version {target_version}",
        published_by_id=user_id,
        published_at=utcnow(),
    )
    db.session.add(version)

    form.name = target.name
    form.description = target.description
    form.fields = copy.deepcopy(target.fields)
    form.settings = copy.deepcopy(target.settings or {})
    form.current_version = number

    record_audit(
        form.organisation_id, user_id, "rollback", "custom_form", form.id,
        old_values={"version": rolled_back_from},
        new_values={"version": number, "rolled_back_to": target_version},
    )
    log.info("Rolled form %s back to version %s (new version %s)", form.id, target_version, number)
    return RollbackResult(
        form=form,
        version=version,
        rolled_back_from=rolled_back_from,
        rolled_back_to=target_version,
    )
