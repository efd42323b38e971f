"""Grievance case rules: SLA, triage, escalation and statistics.

Everything here works on plain values or dicts so it can be used both by the
grievance routes (on ORM rows converted with `crud.grievance_to_dict`) and in
unit tests without a database.
"""
from __future__ import annotations

import math
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.core.ids import prefixed_id
from app.core.timeutils import as_utc, utcnow

GRIEVANCE_CATEGORIES = {
    "labor_rights": {
        "name": "Labor Rights",
        "subcategories": ["wages", "working_hours", "overtime", "benefits", "contract_terms"],
        "priority": "high",
        "sla_days": 7,
    },
    "health_safety": {
        "name": "Health & Safety",
        "subcategories": ["workplace_safety", "equipment_safety", "chemical_exposure", "ergonomics"],
        "priority": "critical",
        "sla_days": 1,
    },
    "harassment_discrimination": {
        "name": "Harassment & Discrimination",
        "subcategories": ["sexual_harassment", "bullying", "discrimination", "retaliation"],
        "priority": "critical",
        "sla_days": 1,
    },
    "working_conditions": {
        "name": "Working Conditions",
        "subcategories": ["ventilation", "lighting", "noise", "temperature", "cleanliness"],
        "priority": "medium",
        "sla_days": 14,
    },
    "management_issues": {
        "name": "Management Issues",
        "subcategories": ["supervision", "communication", "policies", "procedures"],
        "priority": "medium",
        "sla_days": 14,
    },
    "other": {
        "name": "Other Issues",
        "subcategories": ["general", "personal", "administrative"],
        "priority": "low",
        "sla_days": 30,
    },
}

CASE_STATUSES = {
    "intake": "Intake - Case received and being reviewed",
    "triage": "Triage - Case being assessed and prioritized",
    "assigned": "Assigned - Case assigned to investigator",
    "investigation": "Investigation - Case under investigation",
    "resolution": "Resolution - Solution being implemented",
    "verification": "Verification - Solution effectiveness being verified",
    "closed": "Closed - Case resolved and closed",
    "escalated": "Escalated - Case escalated to higher authority",
}
OPEN_INVESTIGATION_STATUSES = ("assigned", "investigation", "resolution")
# extra timeline keys stamped alongside the status itself
TIMELINE_ALIASES = {"assigned": "assignment", "closed": "closure"}

PRIORITY_LEVELS = {
    "critical": {"name": "Critical", "sla_days": 1, "escalation_hours": 4},
    "high": {"name": "High", "sla_days": 7, "escalation_hours": 24},
    "medium": {"name": "Medium", "sla_days": 14, "escalation_hours": 72},
    "low": {"name": "Low", "sla_days": 30, "escalation_hours": 168},
}

CRITICAL_KEYWORDS = ("safety", "harassment", "discrimination", "child", "forced")
HIGH_KEYWORDS = ("wages", "overtime", "benefits", "retaliation")

ASSIGNEE_BY_CATEGORY = {
    "health_safety": "safety_officer",
    "harassment_discrimination": "hr_manager",
    "labor_rights": "compliance_officer",
    "working_conditions": "facility_manager",
    "management_issues": "operations_manager",
    "other": "general_investigator",
}

ESCALATION_ACTIONS = {
    "investigator": "Immediate attention required",
    "supervisor": "Supervisor notification and oversight",
    "department_head": "Department head involvement required",
    "senior_management": "Senior management escalation required",
}

TIME_RANGES = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}

EXPECTED_COMPLETION_DAYS = 7


def generate_case_id() -> str:
    return prefixed_id("grievance")


def generate_case_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"GR-{now.year}{now.month:02d}-{secrets.randbelow(10000):04d}"


def calculate_sla_days(category: str, priority: str) -> int:
    category_sla = GRIEVANCE_CATEGORIES.get(category, {}).get("sla_days", 30)
    priority_sla = PRIORITY_LEVELS.get(priority, {}).get("sla_days", 14)
    return min(category_sla, priority_sla)


def calculate_priority(category: str, description: str) -> str:
    priority = GRIEVANCE_CATEGORIES.get(category, {}).get("priority", "medium")
    text = (description or "").lower()
    if any(k in text for k in CRITICAL_KEYWORDS):
        return "critical"
    if any(k in text for k in HIGH_KEYWORDS):
        return "high"
    return priority


def assess_initial_risk(category: str, subcategory: Optional[str], description: str) -> str:
    risk = "low"
    if category in ("health_safety", "harassment_discrimination"):
        risk = "high"
    elif category == "labor_rights":
        risk = "medium"

    text = (description or "").lower()
    if "urgent" in text or "emergency" in text:
        risk = "critical"
    return risk


def calculate_urgency(priority: str, category: str) -> int:
    urgency = {"critical": 10, "high": 7, "medium": 4, "low": 1}.get(priority, 4)
    if category in ("health_safety", "harassment_discrimination"):
        urgency += 3
    return min(10, urgency)


def recommend_assignee(category: str) -> str:
    return ASSIGNEE_BY_CATEGORY.get(category, "general_investigator")


def assess_sla_breach_risk(due_date: datetime, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    days_until_due = math.ceil((as_utc(due_date) - now).total_seconds() / 86400)
    if days_until_due < 0:
        return "breached"
    if days_until_due <= 1:
        return "critical"
    if days_until_due <= 3:
        return "high"
    if days_until_due <= 7:
        return "medium"
    return "low"


def identify_escalation_triggers(priority: str, category: str, confidential: bool) -> List[str]:
    triggers = []
    if priority == "critical":
        triggers.append("critical_priority")
    if category == "harassment_discrimination":
        triggers.append("sensitive_issue")
    if confidential:
        triggers.append("confidential_case")
    return triggers


def perform_triage(grievance: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Automatic triage for a freshly created case.

    Urgency and escalation triggers use the priority the case was submitted
    with; the returned `priority` is the triaged one.
    """
    category = grievance.get("category") or "other"
    description = grievance.get("description") or ""
    submitted = grievance.get("priority") or "medium"
    return {
        "priority": calculate_priority(category, description),
        "risk_level": assess_initial_risk(category, grievance.get("subcategory"), description),
        "urgency": calculate_urgency(submitted, category),
        "recommended_assignee": recommend_assignee(category),
        "sla_breach_risk": assess_sla_breach_risk(grievance["due_date"], now),
        "escalation_triggers": identify_escalation_triggers(submitted, category, bool(grievance.get("confidential"))),
    }


def calculate_escalation_level(breach_hours: int) -> str:
    if breach_hours >= 72:
        return "senior_management"
    if breach_hours >= 48:
        return "department_head"
    if breach_hours >= 24:
        return "supervisor"
    return "investigator"


def get_escalation_action(level: str) -> str:
    return ESCALATION_ACTIONS.get(level, "Standard escalation procedures")


def check_sla_breach(due_date: Optional[datetime], status: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    if due_date is None:
        return {"breached": False}
    now = now or utcnow()
    due = as_utc(due_date)
    if now <= due:
        return {"breached": False}

    breach_hours = int((now - due).total_seconds() // 3600)
    level = calculate_escalation_level(breach_hours)
    return {
        "breached": True,
        "breach_hours": breach_hours,
        "escalation_level": level,
        "due_date": due.isoformat(),
        "current_status": status,
        "recommended_action": get_escalation_action(level),
    }


def expected_completion(now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(days=EXPECTED_COMPLETION_DAYS)


def timeline_keys(status: str) -> List[str]:
    alias = TIMELINE_ALIASES.get(status)
    return [status, alias] if alias else [status]


# ---------------------------
# Statistics
# ---------------------------

def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(str(value)))


def filter_by_time_range(grievances: Iterable[Dict[str, Any]], time_range: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or utcnow()
    cutoff = now - timedelta(days=TIME_RANGES.get(time_range, TIME_RANGES["30d"]))
    return [g for g in grievances if (_parse_ts(g.get("created_at")) or now) >= cutoff]


def calculate_sla_compliance(grievances: List[Dict[str, Any]]) -> Dict[str, int]:
    total = len(grievances)
    if total == 0:
        return {"rate": 100, "breached": 0, "compliant": 0, "total": 0}
    breached = sum(1 for g in grievances if (g.get("sla_breach") or {}).get("breached"))
    compliant = total - breached
    return {
        "rate": round(compliant / total * 100),
        "breached": breached,
        "compliant": compliant,
        "total": total,
    }


def calculate_average_resolution_time(grievances: List[Dict[str, Any]]) -> int:
    durations = []
    for g in grievances:
        closed = (g.get("timeline") or {}).get("closure")
        if g.get("status") != "closed" or not closed:
            continue
        created = _parse_ts(g.get("created_at"))
        durations.append(math.ceil((_parse_ts(closed) - created).total_seconds() / 86400))
    if not durations:
        return 0
    return round(sum(durations) / len(durations))


def calculate_escalation_rate(grievances: List[Dict[str, Any]]) -> int:
    total = len(grievances)
    if total == 0:
        return 0
    escalated = sum(1 for g in grievances if g.get("escalation_history"))
    return round(escalated / total * 100)


def calculate_risk_distribution(grievances: List[Dict[str, Any]]) -> Dict[str, int]:
    distribution = {"critical": 0, "high": 0, "medium": 0, "low": 0}
    for g in grievances:
        risk = g.get("risk_level") or "medium"
        distribution[risk] = distribution.get(risk, 0) + 1
    return distribution


def grievance_statistics(grievances: List[Dict[str, Any]], time_range: str = "30d", now: Optional[datetime] = None) -> Dict[str, Any]:
    selected = filter_by_time_range(grievances, time_range, now)
    stats: Dict[str, Any] = {
        "total": len(selected),
        "by_status": {},
        "by_priority": {},
        "by_category": {},
        "by_month": {},
        "sla_compliance": calculate_sla_compliance(selected),
        "average_resolution_time": calculate_average_resolution_time(selected),
        "escalation_rate": calculate_escalation_rate(selected),
        "risk_distribution": calculate_risk_distribution(selected),
    }
    for g in selected:
        for key, field in (("by_status", "status"), ("by_priority", "priority"), ("by_category", "category")):
            stats[key][g.get(field)] = stats[key].get(g.get(field), 0) + 1
        created = _parse_ts(g.get("created_at"))
        if created:
            month = created.strftime("%Y-%m")
            stats["by_month"][month] = stats["by_month"].get(month, 0) + 1
    return stats
