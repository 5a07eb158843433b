from datetime import datetime

import pytest
import requests

from fleetdesk.db_models import db, AssetGeofenceState, Geofence, GeofenceAlert, GeofenceAlertSettings
from fleetdesk.services.geofence_alerts import (
    alert_message,
    check_geofence_alerts,
    is_after_hours,
    send_alert_notifications,
)
from fleetdesk.services.geofence_utils import is_geofence_active

YARD = (51.5, -0.12)
OUTSIDE = (51.6, -0.12)


def make_geofence(org, with_settings=True, **settings):
    geofence = Geofence(
        organisation_id=org.id,
        name="Main yard",
        geofence_type="circle",
        center_latitude=YARD[0],
        center_longitude=YARD[1],
        radius_meters=300,
        active_start_time="07:00",
        active_end_time="18:00",
    )
    if with_settings:
        geofence.alert_settings = GeofenceAlertSettings(**settings)
    db.session.add(geofence)
    db.session.commit()
    return geofence


def test_first_report_only_records_state(org, make_asset):
    asset = make_asset()
    geofence = make_geofence(org)

    assert check_geofence_alerts(asset, *YARD) == []
    db.session.commit()
    state = db.session.query(AssetGeofenceState).one()
    assert state.geofence_id == geofence.id and state.is_inside is True


def test_exit_then_entry(org, make_asset):
    asset = make_asset(make="Scania", model="R450")
    make_geofence(org)
    noon = datetime(2026, 3, 2, 12, 0)

    check_geofence_alerts(asset, *YARD, moment=noon)
    db.session.commit()

    exit_alerts = check_geofence_alerts(asset, *OUTSIDE, moment=noon)
    db.session.commit()
    assert [a.alert_type for a in exit_alerts] == ["exit"]
    assert alert_message(exit_alerts[0]) == {
        "title": "Geofence Exit Alert",
        "body": f"{asset.asset_number} (Scania R450) exited Main yard",
    }

    entry_alerts = check_geofence_alerts(asset, *YARD, moment=noon)
    db.session.commit()
    assert [a.alert_type for a in entry_alerts] == ["entry"]

    # staying inside raises nothing new
    assert check_geofence_alerts(asset, *YARD, moment=noon) == []


def test_disabled_alert_types_are_not_raised(org, make_asset):
    asset = make_asset()
    make_geofence(org, alert_on_exit=False)
    check_geofence_alerts(asset, *YARD)
    db.session.commit()
    assert check_geofence_alerts(asset, *OUTSIDE) == []


def test_geofence_without_settings_tracks_state_silently(org, make_asset):
    asset = make_asset()
    make_geofence(org, with_settings=False)
    check_geofence_alerts(asset, *OUTSIDE)
    db.session.commit()
    assert check_geofence_alerts(asset, *YARD) == []
    assert db.session.query(AssetGeofenceState).one().is_inside is True


def test_after_hours_movement(org, make_asset):
    asset = make_asset()
    geofence = make_geofence(org, alert_on_after_hours=True)
    late = datetime(2026, 3, 2, 22, 15)

    assert is_after_hours(geofence, late)
    assert not is_after_hours(geofence, datetime(2026, 3, 2, 9, 0))

    check_geofence_alerts(asset, *YARD, moment=late)
    db.session.commit()
    alerts = check_geofence_alerts(asset, *YARD, moment=late)
    assert [a.alert_type for a in alerts] == ["after_hours_movement"]


def test_after_hours_with_overnight_window():
    fence = Geofence(active_start_time="22:00", active_end_time="06:00")
    assert not is_after_hours(fence, datetime(2026, 3, 2, 23, 0))
    assert is_after_hours(fence, datetime(2026, 3, 2, 12, 0))
    assert not is_after_hours(Geofence(), datetime(2026, 3, 2, 12, 0))


@pytest.mark.parametrize("start, end, hour, minute, active", [
    ("08:00", "17:00", 8, 0, True),
    ("08:00", "17:00", 17, 0, True),
    ("08:00", "17:00", 17, 1, False),
    ("08:00", "17:00", 7, 59, False),
    ("22:00", "06:00", 6, 0, True),
    ("22:00", "06:00", 6, 1, False),
    ("22:00", "06:00", 22, 0, True),
])
def test_window_edges_are_either_active_or_after_hours(start, end, hour, minute, active):
    fence = Geofence(is_active=True, active_start_time=start, active_end_time=end)
    moment = datetime(2026, 3, 2, hour, minute)
    assert is_geofence_active(fence, moment) is active
    assert is_after_hours(fence, moment) is not active


def _raise_exit_alert(org, make_asset):
    asset = make_asset()
    make_geofence(org, notify_email=True, notify_user_ids=[7])
    check_geofence_alerts(asset, *YARD)
    db.session.commit()
    alerts = check_geofence_alerts(asset, *OUTSIDE)
    db.session.commit()
    return alerts


def test_notifications_post_to_webhook(test_app, org, make_asset, monkeypatch):
    alerts = _raise_exit_alert(org, make_asset)
    test_app.config["ALERT_WEBHOOK_URL"] = "https://hooks.example.com/fleet"
    calls = []

    class FakeResponse:
        def raise_for_status(self):
            return None

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json))
        return FakeResponse()

    monkeypatch.setattr(requests, "post", fake_post)
    assert send_alert_notifications(alerts) == 1
    url, payload = calls[0]
    assert url == "https://hooks.example.com/fleet"
    assert payload["alert_type"] == "exit"
    assert payload["notify_email"] is True
    assert payload["notify_user_ids"] == [7]
    assert payload["title"] == "Geofence Exit Alert"


def test_notification_failures_are_not_fatal(test_app, org, make_asset, monkeypatch):
    alerts = _raise_exit_alert(org, make_asset)
    test_app.config["ALERT_WEBHOOK_URL"] = "https://hooks.example.com/fleet"

    def failing_post(url, json=None, timeout=None):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "post", failing_post)
    assert send_alert_notifications(alerts) == 0
    assert db.session.query(GeofenceAlert).count() == 1


def test_no_webhook_configured_sends_nothing(org, make_asset):
    alerts = _raise_exit_alert(org, make_asset)
    assert send_alert_notifications(alerts) == 0
