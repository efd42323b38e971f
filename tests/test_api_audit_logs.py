# tests/test_api_audit_logs.py

import json
from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
def activity(client, super_admin, factory):
    """A handful of logged actions: two audits and a grievance."""
    _, headers = super_admin
    for title in ("Fire safety walkthrough", "SMETA pre-audit"):
        client.post("/audits/", headers=headers, json={"factory_id": factory.id, "standard_id": "smeta", "title": title})
    client.post("/grievances/", headers=headers, json={
        "category": "labor_rights", "description": "Bonus missing from payslip", "factory_id": factory.id,
    })
    return headers


def test_only_admins_and_auditors_read_logs(client, make_user, factory):
    _, hr_headers = make_user("hr_staff", factory.id)
    assert client.get("/audit-logs/", headers=hr_headers).status_code == 403
    _, auditor_headers = make_user("auditor", factory.id)
    assert client.get("/audit-logs/", headers=auditor_headers).status_code == 200


def test_list_and_filter(client, activity):
    body = client.get("/audit-logs/", headers=activity).json()
    assert body["total"] == 3
    assert body["logs"][0]["evidence_hash"]

    audits = client.get("/audit-logs/", headers=activity, params={"action": "audit_create", "limit": 1}).json()
    assert audits["total"] == 2
    assert len(audits["logs"]) == 1
    assert audits["has_more"] is True

    high = client.get("/audit-logs/", headers=activity, params={"severity": "high", "category": "case_management"}).json()
    assert high["total"] == 1


def test_request_metadata_is_recorded(client, super_admin, factory):
    _, headers = super_admin
    client.post(
        "/audits/",
        headers={**headers, "x-request-id": "req-42", "x-session-id": "sess-7", "user-agent": "pytest"},
        json={"factory_id": factory.id, "standard_id": "smeta", "title": "x"},
    )
    log = client.get("/audit-logs/", headers=headers).json()["logs"][0]
    assert log["session_id"] == "sess-7"
    assert log["user_agent"] == "pytest"
    assert log["source"] == "api"
    assert log["metadata"]["request_id"] == "req-42"


def test_search(client, activity):
    found = client.get("/audit-logs/search", headers=activity, params={"q": "walkthrough"}).json()
    assert found["total"] == 0
    found = client.get("/audit-logs/search", headers=activity, params={"q": "labor_rights"}).json()
    assert found["total"] == 1
    assert found["logs"][0]["action"] == "grievance_submit"


def test_stats_and_status(client, activity):
    stats = client.get("/audit-logs/stats", headers=activity).json()
    assert stats["total_actions"] == 3
    assert stats["actions_by_category"] == {"audit_management": 2, "case_management": 1}

    status = client.get("/audit-logs/status", headers=activity).json()
    assert status["is_immutable"] is True
    assert status["hash_algorithm"] == "SHA-256"


def test_export_json_is_logged(client, activity):
    r = client.get("/audit-logs/export", headers=activity, params={"format": "json"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/json")
    assert "attachment" in r.headers["content-disposition"]
    assert json.loads(r.text)["total_records"] == 3

    exports = client.get("/audit-logs/", headers=activity, params={"action": "data_export"}).json()
    assert exports["total"] == 1
    assert exports["logs"][0]["severity"] == "critical"


def test_export_csv_and_bad_format(client, activity):
    r = client.get("/audit-logs/export", headers=activity, params={"format": "csv"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert len(r.text.strip().split("\n")) == 4

    assert client.get("/audit-logs/export", headers=activity, params={"format": "pdf"}).status_code == 400


def test_verify(client, activity):
    log_id = client.get("/audit-logs/", headers=activity).json()["logs"][0]["id"]
    result = client.get(f"/audit-logs/{log_id}/verify", headers=activity).json()
    assert result["integrity"] is True
    assert client.get("/audit-logs/audit_missing/verify", headers=activity).status_code == 404


def test_date_filters_with_utc_offset(client, activity):
    local_now = datetime.now(timezone(timedelta(hours=7)))
    earlier = (local_now - timedelta(minutes=5)).isoformat()
    assert client.get("/audit-logs/", headers=activity, params={"start_date": earlier}).json()["total"] == 3
    assert client.get("/audit-logs/", headers=activity, params={"end_date": earlier}).json()["total"] == 0
