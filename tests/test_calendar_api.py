import pytest


def test_events_project_scheduled_jobs_only(client, auth_headers, make_job):
    make_job(id=42, store_id=5, log_date="2025-04-10", log_time="09:15", flag="urgent", description="Chiller fault")
    make_job(store_id=5)
    make_job(store_id=5, log_date="2025-04-10")

    r = client.get("/calendar/events", params={"date": "2025-04-10"}, headers=auth_headers("admin"))
    assert r.status_code == 200
    events = r.json()
    assert len(events) == 1
    event = events[0]
    assert event["id"] == 42
    assert event["start"].startswith("2025-04-10T09:15")
    assert event["end"].startswith("2025-04-10T10:15")
    assert event["storeName"] == "Park Lane"
    assert event["flag"] == "urgent"
    assert event["title"] == "Chiller fault"


def test_events_respect_visibility(client, auth_headers, make_job):
    make_job(store_id=1, log_date="2025-04-10", log_time="09:00")
    make_job(store_id=5, log_date="2025-04-10", log_time="09:00")

    events = client.get("/calendar/events", params={"storeId": 5}, headers=auth_headers("store")).json()
    assert {e["storeId"] for e in events} == {1}


def test_malformed_job_does_not_break_calendar(client, auth_headers, make_job):
    make_job(store_id=1, log_date="2025-04-10", log_time="nine")
    good = make_job(store_id=1, log_date="2025-04-10", log_time="09:00")

    events = client.get("/calendar/events", headers=auth_headers("admin")).json()
    assert [e["id"] for e in events] == [good.id]


@pytest.mark.parametrize("username,view", [
    ("admin", "month"),
    ("regional", "month"),
    ("maintenance", "day"),
    ("store", "week"),
    ("staff", "week"),
])
def test_initial_view(client, auth_headers, username, view):
    body = client.get("/calendar/view", headers=auth_headers(username)).json()
    assert body["view"] == view
    assert body["redirected"] is False
    assert body["displayModes"] == ["list", "calendar"]


def test_store_month_request_is_redirected_with_message(client, auth_headers):
    body = client.post("/calendar/view", json={"view": "month"}, headers=auth_headers("store")).json()
    assert body["view"] == "week"
    assert body["redirected"] is True
    assert body["message"] == "Month view is only available to admin and regional managers."


def test_admin_can_switch_views(client, auth_headers):
    headers = auth_headers("admin")
    assert client.post("/calendar/view", json={"view": "day"}, headers=headers).json()["view"] == "day"
    body = client.post("/calendar/view", json={"view": "month"}, headers=headers).json()
    assert body["view"] == "month" and body["message"] is None
    assert body["canFilterByStore"] is True


def test_maintenance_gets_unscheduled_panel(client, auth_headers):
    body = client.get("/calendar/view", headers=auth_headers("maintenance")).json()
    assert body["showUnscheduledPanel"] is True
    assert body["canFilterByStore"] is False


def test_unknown_view_is_rejected(client, auth_headers):
    assert client.post("/calendar/view", json={"view": "year"}, headers=auth_headers("admin")).status_code == 422


def test_config(client, auth_headers):
    body = client.get("/calendar/config", headers=auth_headers("staff")).json()
    assert body["eventDurationMinutes"] == 60
    assert body["defaultJobTime"] == "09:00"
    assert body["nowRefreshSeconds"] == 60
    assert body["weekStartsOn"] == 1
