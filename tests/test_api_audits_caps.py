# tests/test_api_audits_caps.py

import pytest

from app.services.audit_log import audit_logger


@pytest.fixture
def audit(client, auditor, factory):
    _, headers = auditor
    r = client.post("/audits/", headers=headers, json={
        "factory_id": factory.id,
        "standard_id": "sa8000",
        "title": "SA8000 surveillance audit",
        "audit_type": "external",
    })
    assert r.status_code == 201
    return r.json()


def _finding(client, headers, audit_id, **overrides):
    payload = {
        "title": "Locked exit",
        "description": "Emergency exit on floor 2 locked during shift",
        "finding_type": "safety",
        "severity": "critical",
    }
    payload.update(overrides)
    return client.post(f"/audits/{audit_id}/findings", headers=headers, json=payload)


def test_create_audit_validates_standard_and_factory(client, auditor, super_admin, factory):
    _, headers = auditor
    r = client.post("/audits/", headers=headers, json={"factory_id": factory.id, "standard_id": "bogus", "title": "x"})
    assert r.status_code == 400

    # scoped auditors cannot reach other factories at all
    r = client.post("/audits/", headers=headers, json={"factory_id": 999, "standard_id": "smeta", "title": "x"})
    assert r.status_code == 403

    _, admin_headers = super_admin
    r = client.post("/audits/", headers=admin_headers, json={"factory_id": 999, "standard_id": "smeta", "title": "x"})
    assert r.status_code == 404


def test_audit_is_planned_and_logged(client, audit, db):
    assert audit["status"] == "planned"
    assert audit["findings"] == []
    created = audit_logger.get_logs(db, {"action": "audit_create"})
    assert created["total"] == 1
    assert created["logs"][0]["context"]["standard_id"] == "sa8000"


def test_hr_staff_cannot_create_audits(client, make_user, factory):
    _, headers = make_user("hr_staff", factory.id)
    r = client.post("/audits/", headers=headers, json={"factory_id": factory.id, "standard_id": "smeta", "title": "x"})
    assert r.status_code == 403


def test_audit_lifecycle(client, auditor, audit):
    _, headers = auditor
    audit_id = audit["id"]

    r = client.patch(f"/audits/{audit_id}/status", headers=headers, json={"status": "completed", "score": 90, "summary": "ok"})
    assert r.status_code == 400

    r = client.patch(f"/audits/{audit_id}/status", headers=headers, json={"status": "in_progress"})
    assert r.status_code == 200
    assert r.json()["actual_start"] is not None

    r = client.patch(f"/audits/{audit_id}/status", headers=headers, json={"status": "completed"})
    assert r.status_code == 400

    r = client.patch(f"/audits/{audit_id}/status", headers=headers, json={"status": "completed", "score": 74, "summary": "Gaps"})
    assert r.status_code == 200
    assert r.json()["score"] == 74
    assert r.json()["actual_end"] is not None

    assert _finding(client, headers, audit_id).status_code == 400


def test_update_audit_fields(client, auditor, audit):
    _, headers = auditor
    r = client.patch(f"/audits/{audit['id']}", headers=headers, json={"scope": "Sewing and finishing"})
    assert r.status_code == 200
    assert r.json()["scope"] == "Sewing and finishing"
    assert r.json()["title"] == "SA8000 surveillance audit"


def test_findings_attach_to_audit(client, auditor, audit):
    _, headers = auditor
    r = _finding(client, headers, audit["id"])
    assert r.status_code == 201
    _finding(client, headers, audit["id"], title="Overtime", description="Overtime records incomplete",
             finding_type="hr", severity="high", non_compliance=True, requirement_code="REQ7")

    detail = client.get(f"/audits/{audit['id']}", headers=headers).json()
    assert [f["title"] for f in detail["findings"]] == ["Locked exit", "Overtime"]
    assert detail["findings"][1]["non_compliance"] is True


def test_audit_scope(client, audit, make_user, other_factory):
    _, headers = make_user("factory_admin", other_factory.id)
    assert client.get(f"/audits/{audit['id']}", headers=headers).status_code == 403
    assert client.get("/audits/", headers=headers).json() == []
    assert client.get("/audits/999", headers=headers).status_code == 404


def test_audit_stats(client, super_admin, audit):
    _, headers = super_admin
    stats = client.get("/audits/stats", headers=headers).json()
    assert stats["total"] == 1
    assert stats["by_status"] == {"planned": 1}
    assert stats["by_standard"] == {"sa8000": 1}
    assert stats["average_score"] is None


@pytest.fixture
def cap(client, auditor, audit):
    _, headers = auditor
    _finding(client, headers, audit["id"])
    _finding(client, headers, audit["id"], title="Overtime", description="Overtime records incomplete",
             finding_type="hr", severity="high", non_compliance=True)
    r = client.post(f"/audits/{audit['id']}/caps", headers=headers, json={"priority": "high", "assignee": "Compliance lead"})
    assert r.status_code == 201
    return r.json()


def test_generated_cap(cap, audit, factory):
    assert cap["id"].startswith("cap_")
    assert cap["audit_id"] == audit["id"]
    assert cap["factory_id"] == factory.id
    assert cap["standard_id"] == "sa8000"
    assert cap["title"] == "SA8000 Social Accountability Corrective Action Plan - 2 Issues"
    assert cap["status"] == "pending"
    assert cap["version"] == 1

    actions = cap["action_plan"]["actions"]
    assert [a["type"] for a in actions] == ["immediate", "short_term"]
    assert len(cap["findings"]) == 1
    assert len(cap["non_compliances"]) == 1
    assert cap["risk_assessment"]["level"] == "critical"
    # 2 issues, high: 1000 * 2.0 * max(1, 1.0)
    assert cap["cost_estimate"]["total"] == 2000
    assert cap["timeline"]["sla_days"] == 7
    assert "Safety Officer" in cap["stakeholders"]


def test_cap_status_moves_forward_only(client, auditor, cap):
    _, headers = auditor
    url = f"/caps/{cap['id']}/status"
    assert client.patch(url, headers=headers, json={"status": "closed"}).status_code == 400

    for status in ("approved", "in_progress", "completed", "verified", "closed"):
        r = client.patch(url, headers=headers, json={"status": status})
        assert r.status_code == 200, status
    assert r.json()["version"] == 6

    assert client.patch(url, headers=headers, json={"status": "approved"}).status_code == 400


def test_cap_action_update(client, auditor, cap):
    _, headers = auditor
    r = client.patch(f"/caps/{cap['id']}/actions/action_2", headers=headers,
                     json={"status": "in_progress", "responsible": "HR Manager"})
    assert r.status_code == 200
    action = r.json()["action_plan"]["actions"][1]
    assert action["status"] == "in_progress"
    assert action["responsible"] == "HR Manager"

    again = client.get(f"/caps/{cap['id']}", headers=headers).json()
    assert again["action_plan"]["actions"][1]["status"] == "in_progress"

    missing = client.patch(f"/caps/{cap['id']}/actions/action_9", headers=headers, json={"status": "completed"})
    assert missing.status_code == 404


def test_cap_listing_and_stats(client, make_user, cap, factory):
    _, headers = make_user("hr_staff", factory.id)
    listed = client.get("/caps", headers=headers).json()
    assert [c["id"] for c in listed] == [cap["id"]]
    assert client.get("/caps", headers=headers, params={"q": "SA8000"}).json()[0]["id"] == cap["id"]
    assert client.get("/caps", headers=headers, params={"status": "closed"}).json() == []

    stats = client.get("/caps/stats", headers=headers).json()
    assert stats["total"] == 1
    assert stats["by_priority"] == {"high": 1}
    assert stats["total_cost"] == 2000


def test_workers_cannot_read_caps(client, make_user, cap, factory):
    _, headers = make_user("worker", factory.id)
    assert client.get("/caps", headers=headers).status_code == 403
    assert client.get(f"/caps/{cap['id']}", headers=headers).status_code == 403


def test_unknown_cap_is_404(client, auditor):
    _, headers = auditor
    assert client.get("/caps/cap_nope", headers=headers).status_code == 404
