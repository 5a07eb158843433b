# fleetdesk/services/geofence_alerts.py
"""
Entry/exit/after-hours alerts from asset location reports.

Inside/outside state per (asset, geofence) is stored in
``asset_geofence_state`` so transitions survive restarts and are shared
between workers. The first observation for a pair only records state.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import requests
from flask import current_app

from fleetdesk.db_models import (
    db,
    Asset, AssetGeofenceState, Geofence, GeofenceAlert, GeofenceAlertSettings,
)
from fleetdesk.services.geofence_utils import in_time_window, is_point_in_geofence, sunday_based_weekday

log = logging.getLogger(__name__)

ALERT_TYPES = ("entry", "exit", "after_hours_movement")

DEFAULT_ALERT_SETTINGS = {
    "alert_on_entry": True,
    "alert_on_exit": True,
    "alert_on_after_hours": False,
    "notify_push": True,
    "notify_email": False,
}


def is_after_hours(geofence: Geofence, moment: Optional[datetime] = None) -> bool:
    """
    True on an active day but outside the active window, the complement of
    the window used by is_geofence_active. Without a window nothing is after
    hours.
    """
    start, end = geofence.active_start_time, geofence.active_end_time
    if not start or not end:
        return False
    moment = moment or datetime.now()
    if geofence.active_days and sunday_based_weekday(moment) not in geofence.active_days:
        return False
    return not in_time_window(moment.strftime("%H:%M"), start, end)


def _state_for(asset_id: int, geofence_id: int) -> Optional[AssetGeofenceState]:
    return (
        db.session.query(AssetGeofenceState)
        .filter(AssetGeofenceState.asset_id == asset_id,
                AssetGeofenceState.geofence_id == geofence_id)
        .first()
    )


def check_geofence_alerts(asset: Asset, latitude: float, longitude: float,
                          moment: Optional[datetime] = None) -> list[GeofenceAlert]:
    """Stage alerts for one location report. The caller commits."""
    geofences = (
        db.session.query(Geofence)
        .filter(Geofence.organisation_id == asset.organisation_id, Geofence.is_active.is_(True))
        .order_by(Geofence.id)
        .all()
    )
    alerts = []
    for geofence in geofences:
        inside = is_point_in_geofence(latitude, longitude, geofence)
        state = _state_for(asset.id, geofence.id)
        was_inside = state.is_inside if state is not None else None

        if state is None:
            db.session.add(AssetGeofenceState(asset_id=asset.id, geofence_id=geofence.id, is_inside=inside))
        elif state.is_inside != inside:
            state.is_inside = inside

        settings = geofence.alert_settings
        if settings is None or was_inside is None:
            continue

        alert_types = []
        if not was_inside and inside and settings.alert_on_entry:
            alert_types.append("entry")
        if was_inside and not inside and settings.alert_on_exit:
            alert_types.append("exit")
        if inside and settings.alert_on_after_hours and is_after_hours(geofence, moment):
            alert_types.append("after_hours_movement")

        for alert_type in alert_types:
            alert = GeofenceAlert(
                organisation_id=asset.organisation_id,
                geofence_id=geofence.id,
                asset_id=asset.id,
                alert_type=alert_type,
                latitude=round(latitude, 7),
                longitude=round(longitude, 7),
            )
            db.session.add(alert)
            alerts.append(alert)

    if alerts:
        db.session.flush()
        log.info("Raised %s geofence alert(s) for asset %s", len(alerts), asset.id)
    return alerts


def _asset_label(asset: Asset) -> str:
    label = asset.asset_number
    if asset.make:
        label += f" ({asset.make}{' ' + asset.model if asset.model else ''})"
    return label


def alert_message(alert: GeofenceAlert) -> dict:
    label = _asset_label(alert.asset)
    name = alert.geofence.name
    if alert.alert_type == "entry":
        return {"title": "Geofence Entry Alert", "body": f"{label} entered {name}"}
    if alert.alert_type == "exit":
        return {"title": "Geofence Exit Alert", "body": f"{label} exited {name}"}
    return {
        "title": "After-Hours Movement Alert",
        "body": f"{label} detected moving in {name} during after-hours",
    }


def send_alert_notifications(alerts: list[GeofenceAlert]) -> int:
    """
    Post committed alerts to the configured webhook. Delivery failures are
    logged and do not affect the stored alerts. Returns how many were sent.
    """
    url = current_app.config.get("ALERT_WEBHOOK_URL")
    if not url or not alerts:
        return 0

    timeout = current_app.config.get("ALERT_WEBHOOK_TIMEOUT", 5)
    sent = 0
    for alert in alerts:
        settings: Optional[GeofenceAlertSettings] = alert.geofence.alert_settings
        payload = {
            "alert_id": alert.id,
            "alert_type": alert.alert_type,
            "geofence_id": alert.geofence_id,
            "asset_id": alert.asset_id,
            "latitude": alert.latitude,
            "longitude": alert.longitude,
            "notify_push": settings.notify_push if settings else True,
            "notify_email": settings.notify_email if settings else False,
            "notify_user_ids": list(settings.notify_user_ids or []) if settings else [],
            **alert_message(alert),
        }
        try:
            response = requests.post(url, json=payload, timeout=timeout)
            response.raise_for_status()
            sent += 1
        except requests.RequestException as e:
            current_app.logger.error("Failed to deliver geofence alert %s: %s", alert.id, e)
    return sent
