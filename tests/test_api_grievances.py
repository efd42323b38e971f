# tests/test_api_grievances.py

from datetime import datetime, timedelta, timezone

import pytest

import crud, models, schemas
from app.core.timeutils import as_utc, utcnow
from app.services.audit_log import audit_logger


@pytest.fixture
def worker(make_user, factory):
    return make_user("worker", factory.id, full_name="Srey Pov")


@pytest.fixture
def committee(make_user, factory):
    return make_user("grievance_committee", factory.id)


def _submit(client, headers, **overrides):
    payload = {
        "category": "working_conditions",
        "subcategory": "temperature",
        "description": "The sewing floor is too hot in the afternoon",
    }
    payload.update(overrides)
    return client.post("/grievances/", headers=headers, json=payload)


def test_worker_submission_is_triaged(client, worker, factory, db):
    user, headers = worker
    r = _submit(client, headers)
    assert r.status_code == 201
    case = r.json()

    assert case["case_number"].startswith("GR-")
    assert case["status"] == "triage"
    assert case["worker_id"] == user.id
    assert case["worker_name"] == "Srey Pov"
    assert case["factory_id"] == factory.id
    assert case["priority"] == "medium"
    assert case["sla_days"] == 14
    assert set(case["timeline"]) == {"intake", "triage"}
    assert case["triage_result"]["recommended_assignee"] == "facility_manager"

    submitted = audit_logger.get_logs(db, {"action": "grievance_submit"})
    assert submitted["total"] == 1
    assert submitted["logs"][0]["severity"] == "high"


def test_keywords_raise_priority_and_sla(client, worker):
    _, headers = worker
    case = _submit(client, headers, category="other", description="A child is working on the cutting line", priority="low").json()
    assert case["priority"] == "critical"
    # SLA is computed from the submitted priority
    assert case["sla_days"] == 30
    assert case["triage_result"]["urgency"] == 1
    assert case["triage_result"]["escalation_triggers"] == []


def test_health_and_safety_cases_get_one_day(client, worker):
    _, headers = worker
    case = _submit(client, headers, category="health_safety", description="Chemical smell near dyeing", confidential=True).json()
    assert case["sla_days"] == 1
    assert case["risk_level"] == "high"
    assert case["triage_result"]["escalation_triggers"] == ["confidential_case"]
    assert case["triage_result"]["sla_breach_risk"] == "critical"


def test_invalid_category_is_rejected(client, worker):
    _, headers = worker
    assert _submit(client, headers, category="gossip").status_code == 422
    assert _submit(client, headers, description="").status_code == 422


def test_workers_only_see_their_own_cases(client, worker, make_user, factory):
    _, headers = worker
    mine = _submit(client, headers).json()
    _, other_headers = make_user("worker", factory.id)
    theirs = _submit(client, other_headers).json()

    listed = client.get("/grievances/", headers=headers).json()
    assert [g["id"] for g in listed] == [mine["id"]]
    assert client.get(f"/grievances/{theirs['id']}", headers=headers).status_code == 404
    assert client.get(f"/grievances/{mine['id']}", headers=headers).status_code == 200


def test_confidential_cases_hidden_from_hr(client, worker, make_user, factory):
    _, headers = worker
    secret = _submit(client, headers, confidential=True).json()
    _submit(client, headers)
    _, hr_headers = make_user("hr_staff", factory.id)

    listed = client.get("/grievances/", headers=hr_headers).json()
    assert len(listed) == 1
    assert listed[0]["confidential"] is False
    assert client.get(f"/grievances/{secret['id']}", headers=hr_headers).status_code == 404


def test_list_filters(client, worker, committee):
    _, headers = worker
    _submit(client, headers)
    _submit(client, headers, category="labor_rights", description="Wages paid late")
    _, c_headers = committee

    by_category = client.get("/grievances/", headers=c_headers, params={"category": "labor_rights"}).json()
    assert len(by_category) == 1
    by_text = client.get("/grievances/", headers=c_headers, params={"q": "sewing"}).json()
    assert len(by_text) == 1
    assert len(client.get("/grievances/", headers=c_headers, params={"priority": "high"}).json()) == 1


def test_assign_case(client, worker, committee, make_user, factory, db):
    _, headers = worker
    case = _submit(client, headers).json()
    committee_user, c_headers = committee
    investigator, _ = make_user("hr_staff", factory.id)

    r = client.post(f"/grievances/{case['id']}/assign", headers=c_headers,
                    json={"investigator_id": investigator.id, "notes": "Check thermometers"})
    assert r.status_code == 200
    assigned = r.json()
    assert assigned["status"] == "assigned"
    assert assigned["investigator_id"] == investigator.id
    assert assigned["assignment"]["assigned_by"] == committee_user.id
    assert assigned["assignment"]["workload"] == 0
    assert "assignment" in assigned["timeline"]

    other = _submit(client, headers).json()
    r = client.post(f"/grievances/{other['id']}/assign", headers=c_headers, json={"investigator_id": investigator.id})
    assert r.json()["assignment"]["workload"] == 1

    missing = client.post(f"/grievances/{case['id']}/assign", headers=c_headers, json={"investigator_id": 999})
    assert missing.status_code == 400

    assert audit_logger.get_logs(db, {"action": "case_update"})["total"] == 2


def test_workers_cannot_handle_cases(client, worker):
    _, headers = worker
    case = _submit(client, headers).json()
    r = client.patch(f"/grievances/{case['id']}/status", headers=headers, json={"status": "closed"})
    assert r.status_code == 403


def test_status_update_records_timeline_and_notes(client, worker, committee):
    _, headers = worker
    case = _submit(client, headers).json()
    _, c_headers = committee

    r = client.patch(f"/grievances/{case['id']}/status", headers=c_headers,
                     json={"status": "closed", "notes": "Fans installed"})
    assert r.status_code == 200
    closed = r.json()
    assert closed["status"] == "closed"
    assert "closed" in closed["timeline"]
    assert "closure" in closed["timeline"]
    assert closed["notes"][0]["content"] == "Status changed to: closed"
    assert closed["notes"][0]["details"] == "Fans installed"
    assert closed["sla_breach"] is None
    assert closed["escalation_history"] == []


def test_overdue_status_update_escalates(client, worker, committee, db):
    _, headers = worker
    case = _submit(client, headers).json()
    row = db.query(models.Grievance).filter(models.Grievance.id == case["id"]).one()
    row.due_date = utcnow() - timedelta(hours=30)
    db.commit()

    _, c_headers = committee
    updated = client.patch(f"/grievances/{case['id']}/status", headers=c_headers,
                           json={"status": "investigation"}).json()
    assert updated["sla_breach"]["breached"] is True
    assert updated["sla_breach"]["escalation_level"] == "supervisor"
    assert updated["escalation_history"][0]["type"] == "sla_breach"


def test_categories_and_stats(client, worker, committee):
    _, headers = worker
    _submit(client, headers)
    _submit(client, headers, category="health_safety", description="Blocked fire exit")
    _, c_headers = committee

    categories = client.get("/grievances/categories", headers=headers).json()
    assert categories["health_safety"]["sla_days"] == 1

    stats = client.get("/grievances/stats", headers=c_headers, params={"time_range": "7d"}).json()
    assert stats["total"] == 2
    assert stats["by_category"] == {"working_conditions": 1, "health_safety": 1}
    assert stats["sla_compliance"]["rate"] == 100

    assert client.get("/grievances/stats", headers=headers).status_code == 403
    assert client.get("/grievances/stats", headers=c_headers, params={"time_range": "2w"}).status_code == 422


def test_due_date_counts_from_the_intake_time(db, worker):
    user, _ = worker
    intake = datetime(2026, 1, 10, 8, 0, tzinfo=timezone.utc)
    case = crud.create_grievance(
        db,
        schemas.GrievanceCreate(category="labor_rights", description="Payslip missing night allowance"),
        user,
        now=intake,
    )
    assert as_utc(case.created_at) == intake
    assert as_utc(case.due_date) - as_utc(case.created_at) == timedelta(days=case.sla_days)
    assert case.timeline["intake"] == intake.isoformat()


def test_api_due_date_matches_created_at(client, worker):
    _, headers = worker
    case = _submit(client, headers).json()
    created = as_utc(datetime.fromisoformat(case["created_at"]))
    due = as_utc(datetime.fromisoformat(case["due_date"]))
    assert due - created == timedelta(days=case["sla_days"])
