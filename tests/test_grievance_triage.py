# tests/test_grievance_triage.py

import re
from datetime import datetime, timedelta, timezone

import pytest

from app.services import grievance_triage as gt

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def test_case_number_format():
    number = gt.generate_case_number(NOW)
    assert re.fullmatch(r"GR-202506-\d{4}", number)
    assert gt.generate_case_id().startswith("grievance_")


@pytest.mark.parametrize(
    "category,priority,days",
    [
        ("health_safety", "low", 1),
        ("other", "high", 7),
        ("working_conditions", "medium", 14),
        ("other", "low", 30),
        ("unknown", "unknown", 14),
    ],
)
def test_sla_is_the_stricter_of_category_and_priority(category, priority, days):
    assert gt.calculate_sla_days(category, priority) == days


def test_priority_keywords_override_category_default():
    assert gt.calculate_priority("other", "Child was seen on the night shift") == "critical"
    assert gt.calculate_priority("working_conditions", "Overtime not paid for March") == "high"
    assert gt.calculate_priority("working_conditions", "Lights are flickering") == "medium"
    assert gt.calculate_priority("nonsense", "nothing special") == "medium"


def test_initial_risk():
    assert gt.assess_initial_risk("health_safety", None, "dust") == "high"
    assert gt.assess_initial_risk("labor_rights", "wages", "late pay") == "medium"
    assert gt.assess_initial_risk("other", None, "general") == "low"
    assert gt.assess_initial_risk("other", None, "URGENT: gas smell") == "critical"


def test_urgency_is_capped():
    assert gt.calculate_urgency("critical", "health_safety") == 10
    assert gt.calculate_urgency("high", "harassment_discrimination") == 10
    assert gt.calculate_urgency("medium", "harassment_discrimination") == 7
    assert gt.calculate_urgency("low", "other") == 1


@pytest.mark.parametrize(
    "delta,expected",
    [
        (timedelta(days=-2), "breached"),
        (timedelta(hours=12), "critical"),
        (timedelta(days=3), "high"),
        (timedelta(days=6), "medium"),
        (timedelta(days=14), "low"),
    ],
)
def test_sla_breach_risk(delta, expected):
    assert gt.assess_sla_breach_risk(NOW + delta, NOW) == expected


def test_triage_uses_submitted_priority_for_urgency_and_triggers():
    result = gt.perform_triage(
        {
            "category": "harassment_discrimination",
            "description": "Supervisor shouts at the line",
            "priority": "low",
            "confidential": True,
            "due_date": NOW + timedelta(days=1),
        },
        NOW,
    )
    assert result["priority"] == "critical"
    assert result["urgency"] == 4
    assert result["risk_level"] == "high"
    assert result["recommended_assignee"] == "hr_manager"
    assert result["sla_breach_risk"] == "critical"
    assert result["escalation_triggers"] == ["sensitive_issue", "confidential_case"]


@pytest.mark.parametrize(
    "hours,level",
    [(0, "investigator"), (23, "investigator"), (24, "supervisor"), (48, "department_head"), (72, "senior_management")],
)
def test_escalation_levels(hours, level):
    assert gt.calculate_escalation_level(hours) == level


def test_check_sla_breach():
    assert gt.check_sla_breach(None, "triage", NOW) == {"breached": False}
    assert gt.check_sla_breach(NOW + timedelta(hours=1), "triage", NOW) == {"breached": False}

    breach = gt.check_sla_breach(NOW - timedelta(hours=50, minutes=30), "investigation", NOW)
    assert breach["breached"] is True
    assert breach["breach_hours"] == 50
    assert breach["escalation_level"] == "department_head"
    assert breach["current_status"] == "investigation"
    assert breach["recommended_action"] == "Department head involvement required"


def test_naive_due_dates_are_treated_as_utc():
    naive = datetime(2025, 6, 14, 12, 0)
    assert gt.check_sla_breach(naive, "triage", NOW)["breach_hours"] == 24


def test_timeline_keys():
    assert gt.timeline_keys("assigned") == ["assigned", "assignment"]
    assert gt.timeline_keys("closed") == ["closed", "closure"]
    assert gt.timeline_keys("investigation") == ["investigation"]


def _case(status, days_ago, **extra):
    created = NOW - timedelta(days=days_ago)
    row = {
        "status": status,
        "priority": extra.pop("priority", "medium"),
        "category": extra.pop("category", "other"),
        "created_at": created.isoformat(),
        "timeline": {},
        "escalation_history": [],
    }
    row.update(extra)
    return row


def test_statistics():
    rows = [
        _case("closed", 10, timeline={"closure": (NOW - timedelta(days=6)).isoformat()}, risk_level="high"),
        _case("closed", 20, timeline={"closure": (NOW - timedelta(days=18)).isoformat()}, risk_level="low"),
        _case("investigation", 5, sla_breach={"breached": True}, escalation_history=[{"level": "supervisor"}]),
        _case("triage", 2, category="health_safety", priority="critical"),
        _case("triage", 45),
    ]
    stats = gt.grievance_statistics(rows, "30d", NOW)

    assert stats["total"] == 4
    assert stats["by_status"] == {"closed": 2, "investigation": 1, "triage": 1}
    assert stats["by_category"] == {"other": 3, "health_safety": 1}
    assert stats["by_month"] == {"2025-06": 3, "2025-05": 1}
    # closed after 4 and 2 days
    assert stats["average_resolution_time"] == 3
    assert stats["sla_compliance"] == {"rate": 75, "breached": 1, "compliant": 3, "total": 4}
    assert stats["escalation_rate"] == 25
    assert stats["risk_distribution"] == {"critical": 0, "high": 1, "medium": 2, "low": 1}


def test_statistics_empty_and_unknown_range():
    stats = gt.grievance_statistics([], "forever", NOW)
    assert stats["total"] == 0
    assert stats["sla_compliance"]["rate"] == 100
    assert stats["average_resolution_time"] == 0
    assert stats["escalation_rate"] == 0
