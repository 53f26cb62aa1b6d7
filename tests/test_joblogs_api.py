from datetime import date, datetime, timedelta

import pytest

from storehub.models.models import AuditLog, JobLog
from storehub.services import schedule


def test_requires_authentication(client, users):
    assert client.get("/jobs").status_code == 401


def test_store_user_only_sees_own_store_even_when_asking_for_another(client, auth_headers, make_job):
    make_job(store_id=1, description="Door hinge loose")
    make_job(store_id=5, description="Leaking sink")

    r = client.get("/jobs", params={"storeId": 5}, headers=auth_headers("store"))
    assert r.status_code == 200
    body = r.json()
    assert len(body) == 1
    assert all(job["storeId"] == 1 for job in body)


def test_admin_can_filter_by_store(client, auth_headers, make_job):
    make_job(store_id=1)
    make_job(store_id=5)

    everything = client.get("/jobs", headers=auth_headers("admin")).json()
    assert {job["storeId"] for job in everything} == {1, 5}

    park_lane = client.get("/jobs", params={"storeId": 5}, headers=auth_headers("admin")).json()
    assert [job["storeId"] for job in park_lane] == [5]
    assert park_lane[0]["storeName"] == "Park Lane"


def test_unbound_staff_sees_nothing(client, auth_headers, make_job):
    make_job(store_id=1)
    assert client.get("/jobs", headers=auth_headers("staff_unbound")).json() == []


def test_job_from_another_store_is_not_found(client, auth_headers, make_job):
    job = make_job(store_id=5)
    assert client.get(f"/jobs/{job.id}", headers=auth_headers("store")).status_code == 404
    assert client.get(f"/jobs/{job.id}", headers=auth_headers("store5")).status_code == 200


def test_reschedule_changes_only_date_and_time(client, auth_headers, make_job):
    make_job(id=42, store_id=5, log_date="2025-04-10", log_time="09:15", flag="urgent", title="Chiller")
    before = client.get("/jobs/42", headers=auth_headers("maintenance")).json()

    r = client.patch("/jobs/42", json={"logDate": "2025-04-12", "logTime": "14:30"}, headers=auth_headers("maintenance"))
    assert r.status_code == 200
    after = r.json()
    assert after["logDate"] == "2025-04-12"
    assert after["logTime"] == "14:30"
    for name in ("storeId", "title", "description", "category", "flag", "loggedBy", "status"):
        assert after[name] == before[name]


def test_reschedule_normalises_seconds(client, auth_headers, make_job):
    job = make_job(store_id=1, log_date="2025-04-10", log_time="09:15")
    r = client.patch(f"/jobs/{job.id}", json={"logTime": "10:45:00"}, headers=auth_headers("store"))
    assert r.status_code == 200
    assert r.json()["logTime"] == "10:45"


def test_reschedule_writes_audit_entry(client, db_session, auth_headers, make_job):
    job = make_job(store_id=1, log_date="2025-04-10", log_time="09:15")
    client.patch(f"/jobs/{job.id}", json={"logDate": "2025-04-11"}, headers=auth_headers("store"))

    entry = db_session.query(AuditLog).filter(AuditLog.entity_id == str(job.id)).one()
    assert entry.action == "RESCHEDULE"
    assert entry.changes_json["log_date"] == {"before": "2025-04-10", "after": "2025-04-11"}
    assert entry.integrity_hash


def test_unschedule_moves_job_to_panel_and_off_calendar(client, auth_headers, make_job):
    job = make_job(store_id=1, log_date="2025-04-10", log_time="09:15")
    headers = auth_headers("maintenance")

    r = client.patch(f"/jobs/{job.id}", json={"logDate": None, "logTime": None}, headers=headers)
    assert r.status_code == 200
    assert r.json()["logDate"] is None and r.json()["logTime"] is None

    unscheduled = client.get("/jobs/unscheduled", headers=headers).json()
    assert [j["id"] for j in unscheduled] == [job.id]
    events = client.get("/calendar/events", headers=headers).json()
    assert all(e["id"] != job.id for e in events)


def test_double_booking_is_allowed(client, auth_headers, make_job):
    make_job(id=7, store_id=1, log_date="2025-04-10", log_time="10:00")
    make_job(id=8, store_id=1, log_date="2025-04-11", log_time="08:00")

    r = client.patch("/jobs/8", json={"logDate": "2025-04-10", "logTime": "10:00"}, headers=auth_headers("maintenance"))
    assert r.status_code == 200

    events = client.get("/calendar/events", headers=auth_headers("maintenance")).json()
    same_slot = [e for e in events if e["start"].startswith("2025-04-10T10:00")]
    assert {e["id"] for e in same_slot} == {7, 8}


def test_bad_time_is_rejected(client, auth_headers, make_job):
    job = make_job(store_id=1, log_date="2025-04-10", log_time="09:15")
    r = client.patch(f"/jobs/{job.id}", json={"logTime": "25:99"}, headers=auth_headers("admin"))
    assert r.status_code == 422


@pytest.mark.parametrize("field", ["flag", "category", "status", "description", "attachments"])
def test_required_fields_cannot_be_nulled(client, auth_headers, make_job, field):
    job = make_job(store_id=1, flag="urgent")
    r = client.patch(f"/jobs/{job.id}", json={field: None}, headers=auth_headers("admin"))
    assert r.status_code == 422
    assert client.get(f"/jobs/{job.id}", headers=auth_headers("admin")).json()["flag"] == "urgent"


def test_title_can_be_cleared(client, auth_headers, make_job):
    job = make_job(store_id=1, title="Chiller")
    r = client.patch(f"/jobs/{job.id}", json={"title": None}, headers=auth_headers("admin"))
    assert r.status_code == 200
    assert r.json()["title"] is None


def test_unpadded_date_and_time_are_normalised(client, auth_headers, make_job):
    job = make_job(store_id=1, log_date="2025-04-10", log_time="09:15")
    r = client.patch(f"/jobs/{job.id}", json={"logDate": "2025-4-1", "logTime": "9:5"}, headers=auth_headers("admin"))
    assert r.status_code == 200
    assert (r.json()["logDate"], r.json()["logTime"]) == ("2025-04-01", "09:05")


def test_staff_cannot_edit_and_store_cannot_edit_other_store(client, auth_headers, make_job):
    own = make_job(store_id=1, log_date="2025-04-10", log_time="09:15")
    other = make_job(store_id=5, log_date="2025-04-10", log_time="09:15")

    assert client.patch(f"/jobs/{own.id}", json={"flag": "urgent"}, headers=auth_headers("staff")).status_code == 403
    # Invisible jobs look missing rather than forbidden
    assert client.patch(f"/jobs/{other.id}", json={"flag": "urgent"}, headers=auth_headers("store")).status_code == 404


def test_move_to_tomorrow_keeps_time(client, auth_headers, make_job, monkeypatch):
    monkeypatch.setattr(schedule, "today_local", lambda tz_name=None: date(2025, 4, 10))
    make_job(id=42, store_id=5, log_date="2025-04-10", log_time="09:15")

    r = client.post("/jobs/42/move-tomorrow", headers=auth_headers("maintenance"))
    assert r.status_code == 200
    assert r.json()["logDate"] == "2025-04-11"
    assert r.json()["logTime"] == "09:15"


def test_move_to_tomorrow_uses_default_time_for_unscheduled_job(client, auth_headers, make_job, monkeypatch):
    monkeypatch.setattr(schedule, "today_local", lambda tz_name=None: date(2025, 4, 10))
    job = make_job(store_id=5)

    r = client.post(f"/jobs/{job.id}/move-tomorrow", headers=auth_headers("store5"))
    assert r.status_code == 200
    assert (r.json()["logDate"], r.json()["logTime"]) == ("2025-04-11", "09:00")


def test_create_job(client, auth_headers, stores):
    payload = {
        "storeId": 1,
        "description": "Freezer alarm keeps sounding",
        "category": "electrical",
        "flag": "urgent",
        "logDate": "2025-04-10",
        "logTime": "08:30",
    }
    r = client.post("/jobs", json=payload, headers=auth_headers("store"))
    assert r.status_code == 201
    body = r.json()
    assert body["storeName"] == "Northgate"
    assert body["loggedBy"] == "Nia Store"
    assert body["status"] == "pending"


def test_create_job_permissions(client, auth_headers, stores):
    payload = {"storeId": 5, "description": "Light flickering in aisle 3"}
    assert client.post("/jobs", json=payload, headers=auth_headers("store")).status_code == 403
    assert client.post("/jobs", json={**payload, "storeId": 1}, headers=auth_headers("staff")).status_code == 403
    assert client.post("/jobs", json={**payload, "storeId": 99}, headers=auth_headers("admin")).status_code == 400
    assert client.post("/jobs", json={**payload, "description": "no"}, headers=auth_headers("admin")).status_code == 422


def test_completing_job_stamps_completed_at(client, auth_headers, make_job):
    job = make_job(store_id=1)
    headers = auth_headers("maintenance")

    done = client.patch(f"/jobs/{job.id}", json={"status": "completed"}, headers=headers).json()
    assert done["completedAt"] is not None

    reopened = client.patch(f"/jobs/{job.id}", json={"status": "in_progress"}, headers=headers).json()
    assert reopened["completedAt"] is None


def test_recent_completed_only(client, auth_headers, make_job):
    now = datetime.utcnow()
    make_job(store_id=1, status="pending")
    recent = make_job(store_id=1, status="completed", completed_at=now - timedelta(days=2))
    make_job(store_id=1, status="completed", completed_at=now - timedelta(days=30))

    body = client.get("/jobs", params={"recentCompletedOnly": "true"}, headers=auth_headers("admin")).json()
    completed = [j for j in body if j["status"] == "completed"]
    assert [j["id"] for j in completed] == [recent.id]
    assert len(body) == 2


def test_soft_delete(client, db_session, auth_headers, make_job):
    job = make_job(store_id=1)
    scheduled = make_job(store_id=1, log_date="2025-04-10", log_time="09:00")

    assert client.delete(f"/jobs/{job.id}", headers=auth_headers("store")).status_code == 403
    assert client.delete(f"/jobs/{job.id}", headers=auth_headers("regional")).status_code == 204
    assert client.delete(f"/jobs/{scheduled.id}", headers=auth_headers("admin")).status_code == 204
    admin = auth_headers("admin")
    assert client.get(f"/jobs/{job.id}", headers=admin).status_code == 404
    assert client.get("/jobs", headers=admin).json() == []
    assert client.get("/jobs/unscheduled", headers=admin).json() == []
    assert client.get("/calendar/events", headers=admin).json() == []

    db_session.expire_all()
    assert db_session.get(JobLog, job.id).deleted_at is not None


def test_history_is_admin_and_regional_only(client, auth_headers, make_job):
    job = make_job(store_id=1, log_date="2025-04-10", log_time="09:15")
    client.patch(f"/jobs/{job.id}", json={"logDate": None, "logTime": None}, headers=auth_headers("store"))

    assert client.get(f"/jobs/{job.id}/history", headers=auth_headers("store")).status_code == 403
    history = client.get(f"/jobs/{job.id}/history", headers=auth_headers("admin")).json()
    assert [h["action"] for h in history] == ["UNSCHEDULE"]
    assert history[0]["actorRole"] == "store"
