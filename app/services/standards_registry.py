"""Compliance standards registry.

Holds the built-in catalog of social/quality/environmental standards and buyer
programs, and the DB-backed pieces built on top of it:

- per-factory requirements and their compliance score
- audit checklist generation (one item per catalog requirement)
- audit readiness (compliance, evidence coverage, checklist completion and
  recent activity, weighted)
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.ids import prefixed_id
from app.core.timeutils import utcnow
from app.services import evidence
from app.services.audit_log import audit_logger
from models import AuditChecklist, Requirement

logger = logging.getLogger(__name__)

STANDARDS: Dict[str, Dict[str, Any]] = {
    "smeta": {
        "name": "SMETA (Sedex Members Ethical Trade Audit)",
        "version": "6.1",
        "category": "Social Compliance",
        "description": "Comprehensive social audit methodology for ethical trade",
        "requirements": [
            "ET1 - Employment is freely chosen",
            "ET2 - Freedom of association and the right to collective bargaining",
            "ET3 - Working conditions are safe and hygienic",
            "ET4 - Child labour shall not be used",
            "ET5 - Living wages are paid",
            "ET6 - Working hours are not excessive",
            "ET7 - No discrimination is practised",
            "ET8 - Regular employment is provided",
            "ET9 - No harsh or inhumane treatment is allowed",
        ],
        "risk_levels": ["Low", "Medium", "High", "Critical"],
        "audit_frequency": "12 months",
        "certification_body": "Sedex",
    },
    "sa8000": {
        "name": "SA8000 Social Accountability",
        "version": "2014",
        "category": "Social Compliance",
        "description": "International standard for social accountability",
        "requirements": [
            "SA1 - Child Labour",
            "SA2 - Forced or Compulsory Labour",
            "SA3 - Health and Safety",
            "SA4 - Freedom of Association and Right to Collective Bargaining",
            "SA5 - Discrimination",
            "SA6 - Disciplinary Practices",
            "SA7 - Working Hours",
            "SA8 - Remuneration",
            "SA9 - Management System",
        ],
        "risk_levels": ["Minor", "Major", "Critical"],
        "audit_frequency": "6-12 months",
        "certification_body": "SAI",
    },
    "iso9001": {
        "name": "ISO 9001 Quality Management",
        "version": "2015",
        "category": "Quality Management",
        "description": "International standard for quality management systems",
        "requirements": [
            "Q1 - Context of the Organization",
            "Q2 - Leadership",
            "Q3 - Planning",
            "Q4 - Support",
            "Q5 - Operation",
            "Q6 - Performance Evaluation",
            "Q7 - Improvement",
        ],
        "risk_levels": ["Observation", "Minor NC", "Major NC"],
        "audit_frequency": "12 months",
        "certification_body": "ISO",
    },
    "iso14001": {
        "name": "ISO 14001 Environmental Management",
        "version": "2015",
        "category": "Environmental Management",
        "description": "International standard for environmental management systems",
        "requirements": [
            "E1 - Context of the Organization",
            "E2 - Leadership",
            "E3 - Planning",
            "E4 - Support",
            "E5 - Operation",
            "E6 - Performance Evaluation",
            "E7 - Improvement",
        ],
        "risk_levels": ["Observation", "Minor NC", "Major NC"],
        "audit_frequency": "12 months",
        "certification_body": "ISO",
    },
    "iso45001": {
        "name": "ISO 45001 Occupational Health & Safety",
        "version": "2018",
        "category": "Health & Safety",
        "description": "International standard for occupational health and safety",
        "requirements": [
            "H1 - Context of the Organization",
            "H2 - Leadership and Worker Participation",
            "H3 - Planning",
            "H4 - Support",
            "H5 - Operation",
            "H6 - Performance Evaluation",
            "H7 - Improvement",
        ],
        "risk_levels": ["Observation", "Minor NC", "Major NC"],
        "audit_frequency": "12 months",
        "certification_body": "ISO",
    },
    "higg": {
        "name": "Higg Index (Sustainable Apparel Coalition)",
        "version": "4.0",
        "category": "Sustainability",
        "description": "Standardized sustainability measurement for apparel and footwear",
        "requirements": [
            "H1 - Management",
            "H2 - Energy & Greenhouse Gas",
            "H3 - Water Use",
            "H4 - Wastewater",
            "H5 - Emissions to Air",
            "H6 - Waste Management",
            "H7 - Chemicals Management",
            "H8 - Social/Labor",
        ],
        "risk_levels": ["Level 1", "Level 2", "Level 3"],
        "audit_frequency": "12 months",
        "certification_body": "SAC",
    },
    "slcp": {
        "name": "Social & Labor Convergence Program",
        "version": "2021",
        "category": "Social Compliance",
        "description": "Converged assessment framework for social and labor conditions",
        "requirements": [
            "SL1 - Recruitment and Hiring",
            "SL2 - Wages",
            "SL3 - Working Hours",
            "SL4 - Freedom of Association",
            "SL5 - Discrimination",
            "SL6 - Disciplinary Practices",
            "SL7 - Health and Safety",
            "SL8 - Child Labor",
            "SL9 - Forced Labor",
        ],
        "risk_levels": ["Green", "Yellow", "Red"],
        "audit_frequency": "12 months",
        "certification_body": "SLCP",
    },
}

BUYER_PROGRAMS: Dict[str, Dict[str, Any]] = {
    "primark": {
        "name": "Primark Ethical Trade Program",
        "version": "2024",
        "category": "Buyer Program",
        "description": "Primark-specific ethical trade requirements",
        "requirements": [
            "P1 - Ethical Trading Policy",
            "P2 - Supplier Code of Conduct",
            "P3 - Worker Rights",
            "P4 - Health and Safety",
            "P5 - Environmental Standards",
        ],
        "risk_levels": ["Pass", "Minor Issues", "Major Issues", "Fail"],
        "audit_frequency": "6-12 months",
        "certification_body": "Primark",
    },
    "gap": {
        "name": "GAP Inc. Vendor Compliance",
        "version": "2024",
        "category": "Buyer Program",
        "description": "GAP Inc. vendor compliance requirements",
        "requirements": [
            "G1 - Code of Vendor Conduct",
            "G2 - Labor Standards",
            "G3 - Health and Safety",
            "G4 - Environmental Standards",
            "G5 - Business Integrity",
        ],
        "risk_levels": ["Compliant", "Minor NC", "Major NC", "Critical NC"],
        "audit_frequency": "6-12 months",
        "certification_body": "GAP Inc.",
    },
    "hm": {
        "name": "H&M Sustainability Assessment",
        "version": "2024",
        "category": "Buyer Program",
        "description": "H&M sustainability and compliance requirements",
        "requirements": [
            "H1 - Sustainability Policy",
            "H2 - Social Standards",
            "H3 - Environmental Standards",
            "H4 - Chemical Management",
            "H5 - Transparency",
        ],
        "risk_levels": ["Green", "Yellow", "Red"],
        "audit_frequency": "12 months",
        "certification_body": "H&M Group",
    },
}

HIGH_PRIORITY_KEYWORDS = ("safety", "child", "forced", "discrimination", "harassment")
MEDIUM_PRIORITY_KEYWORDS = ("training", "documentation", "procedure", "policy")

READINESS_WEIGHTS = {
    "Compliance Score": 0.4,
    "Evidence Coverage": 0.3,
    "Checklist Completion": 0.2,
    "Recent Activity": 0.1,
}
ACTIVITY_WINDOW_DAYS = 30


# ---------------------------
# Catalog lookups
# ---------------------------

def _with_id(standard_id: str, standard: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": standard_id, **standard}


def _all_standards() -> Dict[str, Dict[str, Any]]:
    return {**STANDARDS, **BUYER_PROGRAMS}


def list_standards(category: Optional[str] = None) -> List[Dict[str, Any]]:
    return [
        _with_id(sid, s)
        for sid, s in STANDARDS.items()
        if not category or s["category"].lower() == category.lower()
    ]


def get_standard(standard_id: str) -> Optional[Dict[str, Any]]:
    standard = STANDARDS.get(standard_id) or BUYER_PROGRAMS.get(standard_id)
    return _with_id(standard_id, standard) if standard else None


def require_standard(standard_id: str) -> Dict[str, Any]:
    standard = get_standard(standard_id)
    if standard is None:
        logger.warning("Unknown standard requested: %s", standard_id)
        raise ValueError(f"Standard not found: {standard_id}")
    return standard


def list_buyer_programs() -> List[Dict[str, Any]]:
    return [_with_id(pid, p) for pid, p in BUYER_PROGRAMS.items()]


def search_standards(keyword: str) -> List[Dict[str, Any]]:
    needle = (keyword or "").lower()
    results = []
    for sid, s in _all_standards().items():
        haystacks = [s["name"], s["description"], s["category"], *s["requirements"]]
        if any(needle in h.lower() for h in haystacks):
            results.append(_with_id(sid, s))
    return results


def list_categories() -> List[str]:
    seen: List[str] = []
    for s in _all_standards().values():
        if s["category"] not in seen:
            seen.append(s["category"])
    return seen


def standards_by_category(category: str) -> List[Dict[str, Any]]:
    return [
        _with_id(sid, s)
        for sid, s in _all_standards().items()
        if s["category"].lower() == (category or "").lower()
    ]


def requirement_code(index: int) -> str:
    """Checklist code for the catalog requirement at zero-based `index`."""
    return f"REQ{index + 1}"


# ---------------------------
# Scoring
# ---------------------------

def calculate_priority(requirement_text: str, existing: Optional[Requirement] = None) -> str:
    if existing is not None and existing.status == "non_compliant":
        return "critical"
    text = (requirement_text or "").lower()
    if any(k in text for k in HIGH_PRIORITY_KEYWORDS):
        return "high"
    if any(k in text for k in MEDIUM_PRIORITY_KEYWORDS):
        return "medium"
    return "low"


def score_requirements(requirements: List[Requirement]) -> Dict[str, Any]:
    total = len(requirements)
    compliant = sum(1 for r in requirements if r.status == "compliant")
    non_compliant = sum(1 for r in requirements if r.status == "non_compliant")
    pending = sum(1 for r in requirements if r.status == "pending")
    if total == 0:
        return {
            "total_requirements": 0,
            "compliant_requirements": 0,
            "non_compliant_requirements": 0,
            "pending_requirements": 0,
            "overall_score": 0,
            "risk_level": "unknown",
        }

    score = round(compliant / total * 100)
    risk = "low"
    if score < 60:
        risk = "high"
    elif score < 80:
        risk = "medium"
    return {
        "total_requirements": total,
        "compliant_requirements": compliant,
        "non_compliant_requirements": non_compliant,
        "pending_requirements": pending,
        "overall_score": score,
        "risk_level": risk,
    }


def readiness_level(score: float) -> str:
    if score >= 0.8:
        return "Ready"
    if score >= 0.6:
        return "Nearly Ready"
    if score >= 0.4:
        return "Partially Ready"
    return "Not Ready"


def readiness_recommendations(score: float) -> List[str]:
    if score < 0.4:
        return [
            "Immediate action required to improve compliance",
            "Focus on high-priority requirements first",
            "Consider external compliance consulting",
        ]
    if score < 0.6:
        return [
            "Address non-compliant requirements",
            "Improve evidence documentation",
            "Complete pending checklist items",
        ]
    if score < 0.8:
        return [
            "Finalize remaining requirements",
            "Review and validate evidence",
            "Conduct internal audit preparation",
        ]
    return [
        "Maintain current compliance level",
        "Prepare for external audit",
        "Document best practices",
    ]


def checklist_completion(checklist: Optional[AuditChecklist]) -> float:
    if checklist is None or not checklist.items:
        return 0.0
    done = sum(1 for item in checklist.items if item.get("status") == "completed")
    return done / len(checklist.items)


def summarize_items(items: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        "total_items": len(items),
        "critical_items": sum(1 for i in items if i["priority"] == "critical"),
        "high_priority_items": sum(1 for i in items if i["priority"] == "high"),
        "medium_priority_items": sum(1 for i in items if i["priority"] == "medium"),
        "low_priority_items": sum(1 for i in items if i["priority"] == "low"),
    }


# ---------------------------
# Requirements (DB)
# ---------------------------

def requirements_for(
    db: Session,
    standard_id: str,
    factory_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 100,
) -> List[Requirement]:
    q = db.query(Requirement).filter(
        Requirement.standard_id == standard_id,
        Requirement.is_active.is_(True),
    )
    if factory_id is not None:
        q = q.filter(Requirement.factory_id == factory_id)
    if status:
        q = q.filter(Requirement.status == status)
    return q.order_by(Requirement.created_at.desc(), Requirement.id.desc()).limit(limit).all()


def compliance_score(db: Session, standard_id: str, factory_id: Optional[int]) -> Dict[str, Any]:
    requirements = requirements_for(db, standard_id, factory_id=factory_id, limit=10000)
    return {
        "standard_id": standard_id,
        "factory_id": factory_id,
        **score_requirements(requirements),
        "last_updated": utcnow().isoformat(),
    }


# ---------------------------
# Checklists (DB)
# ---------------------------

def generate_checklist(
    db: Session,
    standard_id: str,
    factory_id: Optional[int] = None,
    audit_type: str = "full",
    focus_areas: Optional[List[str]] = None,
    generated_by_id: Optional[int] = None,
) -> AuditChecklist:
    standard = require_standard(standard_id)
    existing = {
        r.requirement_code: r
        for r in requirements_for(db, standard_id, factory_id=factory_id, limit=10000)
    }

    items = []
    for index, text in enumerate(standard["requirements"]):
        code = requirement_code(index)
        items.append({
            "id": f"item_{index + 1}",
            "requirement_code": code,
            "requirement_text": text,
            "category": standard["category"],
            "priority": calculate_priority(text, existing.get(code)),
            "status": "pending",
            "evidence_required": True,
            "notes": "",
            "findings": [],
            "recommendations": [],
            "assigned_to": None,
            "due_date": None,
            "completion_date": None,
        })

    checklist = AuditChecklist(
        id=prefixed_id("checklist"),
        standard_id=standard_id,
        standard_name=standard["name"],
        standard_version=standard["version"],
        audit_type=audit_type,
        focus_areas=list(focus_areas or []),
        factory_id=factory_id,
        items=items,
        summary=summarize_items(items),
        generated_by_id=generated_by_id,
    )
    db.add(checklist)
    db.commit()
    db.refresh(checklist)
    logger.info("Generated checklist %s for %s (%d items)", checklist.id, standard_id, len(items))
    return checklist


def list_checklists(
    db: Session,
    factory_id: Optional[int] = None,
    standard_id: Optional[str] = None,
    limit: int = 50,
) -> List[AuditChecklist]:
    q = db.query(AuditChecklist).filter(AuditChecklist.is_active.is_(True))
    if factory_id is not None:
        q = q.filter(AuditChecklist.factory_id == factory_id)
    if standard_id:
        q = q.filter(AuditChecklist.standard_id == standard_id)
    return q.order_by(AuditChecklist.generated_at.desc()).limit(limit).all()


def update_checklist_item(
    db: Session,
    checklist: AuditChecklist,
    item_id: str,
    status: str,
    notes: Optional[str] = None,
) -> AuditChecklist:
    items = [dict(i) for i in checklist.items or []]
    for item in items:
        if item["id"] == item_id:
            item["status"] = status
            if notes is not None:
                item["notes"] = notes
            item["completion_date"] = utcnow().isoformat() if status == "completed" else None
            break
    else:
        raise LookupError(f"Checklist item not found: {item_id}")

    # JSON columns only persist on reassignment
    checklist.items = items
    db.commit()
    db.refresh(checklist)
    return checklist


# ---------------------------
# Readiness
# ---------------------------

def recent_activity(db: Session, factory_id: Optional[int]) -> float:
    if factory_id is None:
        return 0.0
    since = utcnow() - timedelta(days=ACTIVITY_WINDOW_DAYS)
    days = audit_logger.active_days(db, str(factory_id), since)
    return min(1.0, days / ACTIVITY_WINDOW_DAYS)


def audit_readiness(db: Session, factory_id: int, standard_id: str) -> Dict[str, Any]:
    """Weighted readiness of a factory for an audit against `standard_id`."""
    standard = require_standard(standard_id)
    score = compliance_score(db, standard_id, factory_id)
    latest = list_checklists(db, factory_id=factory_id, standard_id=standard_id, limit=1)

    values = {
        "Compliance Score": score["overall_score"] / 100,
        "Evidence Coverage": evidence.coverage(db, factory_id, standard_id, standard["requirements"]),
        "Checklist Completion": checklist_completion(latest[0] if latest else None),
        "Recent Activity": recent_activity(db, factory_id),
    }

    factors = []
    readiness = 0.0
    for name, weight in READINESS_WEIGHTS.items():
        contribution = values[name] * weight
        readiness += contribution
        factors.append({
            "factor": name,
            "score": round(values[name] * 100),
            "weight": weight,
            "contribution": contribution,
        })

    return {
        "factory_id": factory_id,
        "standard_id": standard_id,
        "readiness_score": round(readiness * 100),
        "readiness_level": readiness_level(readiness),
        "readiness_factors": factors,
        "compliance_score": score,
        "evidence_coverage": round(values["Evidence Coverage"] * 100),
        "checklist_completion": round(values["Checklist Completion"] * 100),
        "recent_activity": round(values["Recent Activity"] * 100),
        "last_updated": utcnow().isoformat(),
        "recommendations": readiness_recommendations(readiness),
    }
