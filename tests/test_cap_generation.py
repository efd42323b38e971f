# tests/test_cap_generation.py

from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.caps import AuditData, FindingInput
from app.services import cap_generation as cg

START = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def _audit(findings=(), non_compliances=(), standard_name="SA8000 Social Accountability"):
    return AuditData(
        audit_id=11,
        standard_name=standard_name,
        findings=[FindingInput(**f) for f in findings],
        non_compliances=[FindingInput(**f) for f in non_compliances],
    )


SAFETY_CRITICAL = {"type": "safety", "severity": "critical", "description": "Emergency exits on floor 2 are locked during shifts"}
HR_HIGH = {"type": "hr", "severity": "high", "description": "Overtime records incomplete"}
QUALITY_LOW = {"type": "quality", "severity": "low", "description": "Calibration log missing"}


def test_title_and_description_count_issues():
    cap = cg.generate_cap(_audit([SAFETY_CRITICAL, HR_HIGH], [QUALITY_LOW]), start=START)
    assert cap.title == "SA8000 Social Accountability Corrective Action Plan - 3 Issues"
    assert "2 findings and 1 non-compliances" in cap.description
    assert cap.status == "pending"
    assert cap.id.startswith("cap_")


def test_untitled_standard_falls_back_to_compliance():
    cap = cg.generate_cap(_audit([HR_HIGH], standard_name=None), start=START)
    assert cap.title.startswith("Compliance Corrective Action Plan")


def test_one_action_per_issue_in_order():
    cap = cg.generate_cap(_audit([SAFETY_CRITICAL, HR_HIGH], [QUALITY_LOW]), priority="high", start=START)
    actions = cap.action_plan.actions
    assert [a.id for a in actions] == ["action_1", "action_2", "action_3"]

    first = actions[0]
    assert first.title == f"Address safety - {SAFETY_CRITICAL['description'][:50]}..."
    assert first.type == "immediate"
    assert first.priority == "critical"
    assert first.timeframe == "0-24 hours"
    assert first.due_date == START + timedelta(days=1)
    assert first.milestones == ["Immediate Action", "24hr Review", "48hr Follow-up"]
    assert first.resources == ["Safety Equipment", "Training Materials", "Safety Officer"]
    assert first.cost == 5000
    assert first.responsible == "To be assigned"

    second = actions[1]
    assert second.type == "short_term"
    assert second.timeframe == "1-7 days"
    assert second.due_date == START + timedelta(days=7)
    assert second.milestones == ["Planning", "Implementation", "Review", "Verification"]

    assert cap.action_plan.total_actions == 3
    assert cap.action_plan.immediate_actions == 1
    assert cap.action_plan.short_term_actions == 2
    assert cap.action_plan.long_term_actions == 0


def test_unknown_severity_and_type_defaults():
    cap = cg.generate_cap(_audit([{"type": None, "severity": "odd", "description": "x"}]), priority="low", start=START)
    action = cap.action_plan.actions[0]
    assert action.title.startswith("Address issue - ")
    assert action.priority == "medium"
    assert action.timeframe == "1-90 days"
    assert action.resources == ["General Resources", "Staff Time", "Equipment"]
    assert action.cost == 1000


def test_stakeholders_follow_finding_types():
    cap = cg.generate_cap(_audit([SAFETY_CRITICAL, QUALITY_LOW]), start=START)
    assert cap.stakeholders == [
        "Factory Management", "Compliance Team", "HR Department", "Safety Officer", "Quality Manager",
    ]


@pytest.mark.parametrize(
    "findings,priority,level",
    [
        ([SAFETY_CRITICAL], "low", "critical"),
        ([HR_HIGH, HR_HIGH, HR_HIGH], "low", "high"),
        ([HR_HIGH], "low", "medium"),
        ([QUALITY_LOW], "high", "medium"),
        ([QUALITY_LOW], "medium", "low"),
    ],
)
def test_risk_level(findings, priority, level):
    risk = cg.assess_risk(_audit(findings), priority)
    assert risk.level == level
    assert risk.mitigation == cg.MITIGATION[level]


def test_risk_score_and_factors():
    audit = _audit([SAFETY_CRITICAL, HR_HIGH, {"type": "child_labor", "severity": "high", "description": "Under-age worker"}])
    risk = cg.assess_risk(audit, "critical")
    # 1 critical, 2 high, critical multiplier 3.0
    assert risk.score == 10 + 10 + 60
    assert risk.factors == ["Safety Violations", "Child Labor Risk"]
    assert cg.assess_risk(_audit([QUALITY_LOW]), "low").factors == ["General Compliance Risk"]
    assert cg.calculate_risk_score(10, 10, "critical") == 100


def test_cost_estimate():
    # 3 issues, medium: 1000 * 1.5 * max(1, 1.5) = 2250
    cost = cg.estimate_costs(_audit([SAFETY_CRITICAL, HR_HIGH], [QUALITY_LOW]), "medium")
    assert cost.total == 2250
    assert cost.breakdown == {"immediate": 900, "short_term": 900, "long_term": 450}
    assert cost.currency == "USD"

    # a single issue still costs the base amount times the multiplier
    assert cg.estimate_costs(_audit([HR_HIGH]), "critical").total == 3000


def test_timeline_short_sla():
    cap = cg.generate_cap(_audit([SAFETY_CRITICAL, HR_HIGH]), priority="high", start=START)
    tl = cap.timeline
    assert tl.sla_days == 7
    assert tl.target_completion == START + timedelta(days=7)
    assert [(m.name, m.days) for m in tl.milestones] == [
        ("Immediate Actions", 1), ("Short-term Actions", 3), ("Completion", 7),
    ]
    assert len(tl.critical_path) == 1
    assert tl.critical_path[0].duration == "24 hours"


def test_timeline_long_sla_rounds_up():
    tl = cg.generate_timeline(_audit([HR_HIGH]), "low", START)
    assert tl.sla_days == 90
    assert [(m.name, m.days) for m in tl.milestones] == [
        ("Planning Phase", 18), ("Implementation", 54), ("Verification", 18),
    ]
    assert tl.critical_path == []


def test_generation_is_deterministic_for_fixed_inputs():
    audit = _audit([SAFETY_CRITICAL, HR_HIGH], [QUALITY_LOW])
    a = cg.generate_cap(audit, priority="high", start=START, cap_id="cap_x")
    b = cg.generate_cap(audit, priority="high", start=START, cap_id="cap_x")
    assert a.model_dump() == b.model_dump()


def test_status_transitions():
    cg.validate_transition("pending", "approved")
    cg.validate_transition("verified", "closed")
    with pytest.raises(ValueError):
        cg.validate_transition("pending", "closed")
    with pytest.raises(ValueError):
        cg.validate_transition("approved", "pending")
    with pytest.raises(ValueError):
        cg.validate_transition("pending", "archived")


def test_cap_statistics():
    caps = [
        {"status": "pending", "priority": "high", "standard_id": "smeta", "cost_estimate": {"total": 2000}},
        {"status": "approved", "priority": "high", "standard_id": "sa8000", "cost_estimate": {"total": 1000}},
    ]
    stats = cg.cap_statistics(caps)
    assert stats["total"] == 2
    assert stats["by_priority"] == {"high": 2}
    assert stats["total_cost"] == 3000
    assert stats["average_cost"] == 1500
    assert cg.cap_statistics([])["average_cost"] == 0.0
