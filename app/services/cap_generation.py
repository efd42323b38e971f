"""Corrective Action Plan (CAP) generator.

Turns audit findings into a CAP: one SMART action per finding or
non-compliance, a verification plan, stakeholders, a risk assessment, a cost
estimate and a timeline bounded by the priority SLA.

The generator is a pure function of its inputs (audit data, priority and a
start date); persistence lives in `crud.create_cap`.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from app.core.ids import prefixed_id
from app.core.timeutils import utcnow
from app.schemas.caps import (
    ActionItem,
    ActionPlan,
    AuditData,
    CostEstimate,
    CriticalPathItem,
    FindingInput,
    GeneratedCAP,
    Milestone,
    RiskAssessment,
    Timeline,
    VerificationPlan,
)

PRIORITY_SLA_DAYS = {"critical": 1, "high": 7, "medium": 30, "low": 90}
PRIORITY_MULTIPLIERS = {"critical": 3.0, "high": 2.0, "medium": 1.5, "low": 1.0}
DEFAULT_SLA_DAYS = 30
DEFAULT_MULTIPLIER = 1.5

CAP_STATUSES = {
    "pending": "Pending Approval",
    "approved": "Approved",
    "in_progress": "In Progress",
    "completed": "Completed",
    "verified": "Verified",
    "closed": "Closed",
}
# Forward-only lifecycle; `closed` is reachable only after verification.
CAP_TRANSITIONS = {
    "pending": {"approved"},
    "approved": {"in_progress"},
    "in_progress": {"completed"},
    "completed": {"verified"},
    "verified": {"closed"},
    "closed": set(),
}
ACTION_STATUSES = {"pending", "in_progress", "completed", "verified"}

ACTION_COSTS = {"critical": 5000, "high": 2500, "medium": 1000, "low": 500}
RESOURCES_BY_TYPE = {
    "safety": ["Safety Equipment", "Training Materials", "Safety Officer"],
    "environmental": ["Environmental Specialist", "Monitoring Equipment", "Compliance Tools"],
    "quality": ["Quality Manager", "Testing Equipment", "Documentation Tools"],
    "hr": ["HR Staff", "Training Resources", "Policy Documents"],
}
GENERAL_RESOURCES = ["General Resources", "Staff Time", "Equipment"]

TIMEFRAME_DAYS = {"0-24 hours": 1, "1-7 days": 7, "1-30 days": 30, "1-90 days": 90}

MITIGATION = {
    "critical": "Immediate action required. Escalate to senior management.",
    "high": "Urgent attention needed. Weekly progress reviews.",
    "medium": "Standard monitoring. Monthly progress reviews.",
    "low": "Regular monitoring. Quarterly progress reviews.",
}


def generate_cap_id() -> str:
    return prefixed_id("cap")


def priority_multiplier(priority: str) -> float:
    return PRIORITY_MULTIPLIERS.get(priority, DEFAULT_MULTIPLIER)


def map_severity_to_priority(severity: Optional[str]) -> str:
    return severity if severity in PRIORITY_SLA_DAYS else "medium"


def calculate_timeframe(severity: Optional[str], priority: str) -> str:
    if severity == "critical":
        return "0-24 hours"
    if priority == "high":
        return "1-7 days"
    if priority == "medium":
        return "1-30 days"
    return "1-90 days"


def generate_milestones(severity: Optional[str]) -> List[str]:
    if severity == "critical":
        return ["Immediate Action", "24hr Review", "48hr Follow-up"]
    return ["Planning", "Implementation", "Review", "Verification"]


def identify_resources(issue_type: Optional[str]) -> List[str]:
    return list(RESOURCES_BY_TYPE.get(issue_type or "", GENERAL_RESOURCES))


def estimate_action_cost(severity: Optional[str]) -> int:
    return ACTION_COSTS.get(severity or "", 1000)


def _truncate(text: str, n: int = 50) -> str:
    return f"{(text or '')[:n]}..."


def _issue_count(audit: AuditData) -> int:
    return len(audit.findings) + len(audit.non_compliances)


def generate_title(audit: AuditData) -> str:
    standard = audit.standard_name or "Compliance"
    return f"{standard} Corrective Action Plan - {_issue_count(audit)} Issues"


def generate_description(audit: AuditData) -> str:
    return (
        f"Comprehensive corrective action plan addressing {len(audit.findings)} findings "
        f"and {len(audit.non_compliances)} non-compliances identified during the "
        f"{audit.standard_name or 'compliance'} audit."
    )


def generate_action_plan(audit: AuditData, priority: str, start: datetime) -> ActionPlan:
    actions: List[ActionItem] = []
    for index, finding in enumerate([*audit.findings, *audit.non_compliances], start=1):
        timeframe = calculate_timeframe(finding.severity, priority)
        actions.append(
            ActionItem(
                id=f"action_{index}",
                title=f"Address {finding.type or 'issue'} - {_truncate(finding.description)}",
                description=f"Corrective action required for: {finding.description}",
                type="immediate" if finding.severity == "critical" else "short_term",
                priority=map_severity_to_priority(finding.severity),
                timeframe=timeframe,
                due_date=start + timedelta(days=TIMEFRAME_DAYS[timeframe]),
                success_criteria=(
                    f"Root cause of '{_truncate(finding.description, 40)}' removed and closure "
                    f"evidence accepted within {timeframe}"
                ),
                milestones=generate_milestones(finding.severity),
                resources=identify_resources(finding.type),
                cost=estimate_action_cost(finding.severity),
            )
        )

    return ActionPlan(
        actions=actions,
        total_actions=len(actions),
        immediate_actions=sum(1 for a in actions if a.type == "immediate"),
        short_term_actions=sum(1 for a in actions if a.type == "short_term"),
        long_term_actions=sum(1 for a in actions if a.type == "long_term"),
    )


def generate_verification_plan() -> VerificationPlan:
    return VerificationPlan(
        verification_methods=["Document Review", "Site Inspection", "Interview", "Testing"],
        verification_schedule="30 days after completion",
        verification_criteria="All actions completed and documented",
        effectiveness_metrics=["Compliance Score", "Risk Reduction", "Cost Savings"],
        follow_up_required=True,
        follow_up_interval="90 days",
    )


def _has_type(findings: List[FindingInput], issue_type: str) -> bool:
    return any(f.type == issue_type for f in findings)


def identify_stakeholders(audit: AuditData) -> List[str]:
    stakeholders = ["Factory Management", "Compliance Team", "HR Department"]
    if _has_type(audit.findings, "safety"):
        stakeholders.append("Safety Officer")
    if _has_type(audit.findings, "environmental"):
        stakeholders.append("Environmental Manager")
    if _has_type(audit.findings, "quality"):
        stakeholders.append("Quality Manager")
    return stakeholders


def calculate_risk_score(critical: int, high: int, priority: str) -> float:
    return min(100, critical * 10 + high * 5 + priority_multiplier(priority) * 20)


def identify_risk_factors(audit: AuditData) -> List[str]:
    factors = []
    if _has_type(audit.findings, "safety"):
        factors.append("Safety Violations")
    if _has_type(audit.findings, "child_labor"):
        factors.append("Child Labor Risk")
    if _has_type(audit.findings, "forced_labor"):
        factors.append("Forced Labor Risk")
    return factors or ["General Compliance Risk"]


def assess_risk(audit: AuditData, priority: str) -> RiskAssessment:
    critical = sum(1 for f in audit.findings if f.severity == "critical")
    high = sum(1 for f in audit.findings if f.severity == "high")

    level = "low"
    if critical > 0:
        level = "critical"
    elif high > 2:
        level = "high"
    elif high > 0 or priority == "high":
        level = "medium"

    return RiskAssessment(
        level=level,
        score=calculate_risk_score(critical, high, priority),
        factors=identify_risk_factors(audit),
        mitigation=MITIGATION[level],
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_costs(audit: AuditData, priority: str) -> CostEstimate:
    base_cost = 1000
    total = _round_half_up(base_cost * priority_multiplier(priority) * max(1, _issue_count(audit) * 0.5))
    return CostEstimate(
        total=total,
        breakdown={
            "immediate": _round_half_up(total * 0.4),
            "short_term": _round_half_up(total * 0.4),
            "long_term": _round_half_up(total * 0.2),
        },
        currency="USD",
        notes="Estimated costs based on priority and complexity",
    )


def generate_timeline_milestones(total_days: int) -> List[Milestone]:
    if total_days <= 7:
        return [
            Milestone(name="Immediate Actions", days=1),
            Milestone(name="Short-term Actions", days=3),
            Milestone(name="Completion", days=total_days),
        ]
    return [
        Milestone(name="Planning Phase", days=math.ceil(total_days * 0.2)),
        Milestone(name="Implementation", days=math.ceil(total_days * 0.6)),
        Milestone(name="Verification", days=math.ceil(total_days * 0.2)),
    ]


def identify_critical_path(audit: AuditData) -> List[CriticalPathItem]:
    return [
        CriticalPathItem(action=_truncate(f.description))
        for f in audit.findings
        if f.severity == "critical"
    ]


def generate_timeline(audit: AuditData, priority: str, start: datetime) -> Timeline:
    sla_days = PRIORITY_SLA_DAYS.get(priority, DEFAULT_SLA_DAYS)
    return Timeline(
        start_date=start,
        target_completion=start + timedelta(days=sla_days),
        sla_days=sla_days,
        milestones=generate_timeline_milestones(sla_days),
        critical_path=identify_critical_path(audit),
    )


def generate_cap(
    audit: AuditData,
    *,
    factory_id: Optional[int] = None,
    standard_id: str = "unknown",
    priority: str = "medium",
    assignee: str = "unassigned",
    start: Optional[datetime] = None,
    cap_id: Optional[str] = None,
) -> GeneratedCAP:
    """Build a complete CAP for the given audit data.

    Args:
        audit: findings and non-compliances to address.
        factory_id / standard_id: copied onto the plan for filtering.
        priority: plan priority; drives SLA, timeframes, cost and risk score.
        assignee: owner of the plan as a whole.
        start: plan start; defaults to now (UTC).
        cap_id: explicit id, generated when omitted.
    """
    start = start or utcnow()
    return GeneratedCAP(
        id=cap_id or generate_cap_id(),
        audit_id=audit.audit_id,
        standard_id=standard_id,
        factory_id=factory_id,
        priority=priority,
        status="pending",
        title=generate_title(audit),
        description=generate_description(audit),
        assignee=assignee,
        findings=audit.findings,
        non_compliances=audit.non_compliances,
        action_plan=generate_action_plan(audit, priority, start),
        verification_plan=generate_verification_plan(),
        stakeholders=identify_stakeholders(audit),
        risk_assessment=assess_risk(audit, priority),
        cost_estimate=estimate_costs(audit, priority),
        timeline=generate_timeline(audit, priority, start),
    )


def validate_transition(current: str, new: str) -> None:
    if new not in CAP_STATUSES:
        raise ValueError(f"Unknown CAP status: {new}")
    if new not in CAP_TRANSITIONS.get(current, set()):
        raise ValueError(f"Cannot move CAP from '{current}' to '{new}'")


def cap_statistics(caps: List[Dict]) -> Dict:
    """Aggregate counts and costs over CAP dicts (as returned by the API)."""
    stats = {
        "total": len(caps),
        "by_status": {},
        "by_priority": {},
        "by_standard": {},
        "average_cost": 0.0,
        "total_cost": 0,
    }
    for cap in caps:
        for key, field in (("by_status", "status"), ("by_priority", "priority"), ("by_standard", "standard_id")):
            value = cap.get(field)
            stats[key][value] = stats[key].get(value, 0) + 1
        stats["total_cost"] += (cap.get("cost_estimate") or {}).get("total", 0)
    stats["average_cost"] = stats["total_cost"] / stats["total"] if stats["total"] else 0.0
    return stats
