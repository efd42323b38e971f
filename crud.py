# compliance-backend/crud.py

import logging
import math
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

import models, schemas, auth
from app.core.timeutils import as_utc, utcnow
from app.schemas.caps import AuditData, FindingInput, GeneratedCAP
from app.services import cap_generation, grievance_triage, permit_rules, training_rules

logger = logging.getLogger(__name__)

AUDIT_TRANSITIONS = {
    "planned": {"in_progress", "cancelled"},
    "in_progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}
FINDING_OPEN_STATUSES = ("planned", "in_progress")

# ---------------------------
# Users
# ---------------------------

def get_user(db: Session, user_id: int):
    return db.query(models.User).filter(models.User.id == user_id).first()
def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()
def get_users(db: Session, factory_id: Optional[int] = None, skip: int = 0, limit: int = 100):
    q = db.query(models.User)
    if factory_id is not None:
        q = q.filter(models.User.factory_id == factory_id)
    return q.order_by(models.User.id).offset(skip).limit(limit).all()
def create_user(db: Session, user: schemas.UserCreate):
    hashed_password = auth.get_password_hash(user.password)
    db_user = models.User(
        email=user.email,
        full_name=user.full_name,
        hashed_password=hashed_password,
        role=user.role,
        factory_id=user.factory_id,
        organization_id=user.organization_id,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user
def update_user_role(db: Session, db_user: models.User, role: str):
    db_user.role = role
    db.commit()
    db.refresh(db_user)
    return db_user
def deactivate_user(db: Session, db_user: models.User):
    db_user.is_active = False
    db.commit()
    db.refresh(db_user)
    return db_user

# ---------------------------
# Factories
# ---------------------------

def get_factory(db: Session, factory_id: int):
    return db.query(models.Factory).filter(models.Factory.id == factory_id).first()
def get_factory_by_code(db: Session, code: str):
    return db.query(models.Factory).filter(models.Factory.code == code).first()
def get_factories(
    db: Session,
    search: Optional[str] = None,
    country: Optional[str] = None,
    industry: Optional[str] = None,
    is_active: Optional[bool] = None,
    factory_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
):
    q = db.query(models.Factory)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(models.Factory.name.ilike(like), models.Factory.code.ilike(like)))
    if country:
        q = q.filter(models.Factory.country == country)
    if industry:
        q = q.filter(models.Factory.industry == industry)
    if is_active is not None:
        q = q.filter(models.Factory.is_active == is_active)
    if factory_id is not None:
        q = q.filter(models.Factory.id == factory_id)
    return q.order_by(models.Factory.name).offset(skip).limit(limit).all()
def create_factory(db: Session, factory: schemas.FactoryCreate):
    db_factory = models.Factory(**factory.model_dump())
    db.add(db_factory)
    db.commit()
    db.refresh(db_factory)
    return db_factory
def update_factory(db: Session, db_factory: models.Factory, factory_update: schemas.FactoryUpdate):
    for key, value in factory_update.model_dump(exclude_unset=True).items():
        setattr(db_factory, key, value)
    db.commit()
    db.refresh(db_factory)
    return db_factory

def _count_by(db: Session, column, *criteria) -> Dict[str, int]:
    rows = db.query(column, func.count()).filter(*criteria).group_by(column).all()
    return {key: count for key, count in rows}

def get_factory_stats(db: Session, factory_id: int) -> Dict[str, Any]:
    avg_score = (
        db.query(func.avg(models.Audit.score))
        .filter(models.Audit.factory_id == factory_id, models.Audit.status == "completed")
        .scalar()
    )
    open_grievances = (
        db.query(func.count(models.Grievance.id))
        .filter(
            models.Grievance.factory_id == factory_id,
            models.Grievance.is_active.is_(True),
            models.Grievance.status != "closed",
        )
        .scalar()
    )
    return {
        "factory_id": factory_id,
        "audits_by_status": _count_by(db, models.Audit.status, models.Audit.factory_id == factory_id),
        "open_grievances": open_grievances or 0,
        "caps_by_status": _count_by(
            db,
            models.CorrectiveActionPlan.status,
            models.CorrectiveActionPlan.factory_id == factory_id,
            models.CorrectiveActionPlan.is_active.is_(True),
        ),
        "average_audit_score": round(avg_score, 1) if avg_score is not None else None,
    }

# ---------------------------
# Audits
# ---------------------------

def get_audit(db: Session, audit_id: int):
    return db.query(models.Audit).filter(models.Audit.id == audit_id).first()
def get_audits(
    db: Session,
    factory_id: Optional[int] = None,
    status: Optional[str] = None,
    standard_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
):
    q = db.query(models.Audit)
    if factory_id is not None:
        q = q.filter(models.Audit.factory_id == factory_id)
    if status:
        q = q.filter(models.Audit.status == status)
    if standard_id:
        q = q.filter(models.Audit.standard_id == standard_id)
    return q.order_by(models.Audit.id.desc()).offset(skip).limit(limit).all()
def create_audit(db: Session, audit: schemas.AuditCreate, user_id: Optional[int]):
    db_audit = models.Audit(**audit.model_dump(), status="planned", created_by_id=user_id)
    db.add(db_audit)
    db.commit()
    db.refresh(db_audit)
    return db_audit
def update_audit(db: Session, db_audit: models.Audit, audit_update: schemas.AuditUpdate):
    for key, value in audit_update.model_dump(exclude_unset=True).items():
        setattr(db_audit, key, value)
    db.commit()
    db.refresh(db_audit)
    return db_audit

def update_audit_status(db: Session, db_audit: models.Audit, update: schemas.AuditStatusUpdate):
    """Move an audit along planned -> in_progress -> completed (or cancelled).

    Raises ValueError on an illegal transition or a completion without
    score and summary.
    """
    if update.status not in AUDIT_TRANSITIONS.get(db_audit.status, set()):
        raise ValueError(f"Cannot move audit from '{db_audit.status}' to '{update.status}'")
    now = utcnow()
    if update.status == "in_progress":
        db_audit.actual_start = now
    elif update.status == "completed":
        if update.score is None or not update.summary:
            raise ValueError("Completing an audit requires a score and a summary")
        db_audit.score = update.score
        db_audit.summary = update.summary
        db_audit.actual_end = now
    db_audit.status = update.status
    db.commit()
    db.refresh(db_audit)
    return db_audit

def add_finding(db: Session, db_audit: models.Audit, finding: schemas.FindingCreate):
    if db_audit.status not in FINDING_OPEN_STATUSES:
        raise ValueError(f"Findings cannot be added to a {db_audit.status} audit")
    db_finding = models.AuditFinding(**finding.model_dump(), audit_id=db_audit.id)
    db.add(db_finding)
    db.commit()
    db.refresh(db_finding)
    return db_finding

def get_audit_stats(db: Session, factory_id: Optional[int] = None) -> Dict[str, Any]:
    criteria = [models.Audit.factory_id == factory_id] if factory_id is not None else []
    total = db.query(func.count(models.Audit.id)).filter(*criteria).scalar() or 0
    avg_score = (
        db.query(func.avg(models.Audit.score))
        .filter(models.Audit.status == "completed", *criteria)
        .scalar()
    )
    return {
        "total": total,
        "by_status": _count_by(db, models.Audit.status, *criteria),
        "by_standard": _count_by(db, models.Audit.standard_id, *criteria),
        "average_score": round(avg_score, 1) if avg_score is not None else None,
    }

# ---------------------------
# CAPs
# ---------------------------

def audit_data_for(db_audit: models.Audit, standard_name: Optional[str]) -> AuditData:
    """Split an audit's findings into findings and non-compliances for the CAP generator."""
    findings, non_compliances = [], []
    for f in db_audit.findings:
        item = FindingInput(
            type=f.finding_type,
            severity=f.severity,
            description=f.description,
            requirement_code=f.requirement_code,
        )
        (non_compliances if f.non_compliance else findings).append(item)
    return AuditData(
        audit_id=db_audit.id,
        standard_name=standard_name,
        findings=findings,
        non_compliances=non_compliances,
    )

def create_cap(db: Session, cap: GeneratedCAP, user_id: Optional[int]):
    db_cap = models.CorrectiveActionPlan(**cap.model_dump(mode="json"), created_by_id=user_id)
    db.add(db_cap)
    db.commit()
    db.refresh(db_cap)
    logger.info("Created CAP %s for audit %s (%s)", db_cap.id, db_cap.audit_id, db_cap.priority)
    return db_cap
def get_cap(db: Session, cap_id: str):
    return (
        db.query(models.CorrectiveActionPlan)
        .filter(models.CorrectiveActionPlan.id == cap_id, models.CorrectiveActionPlan.is_active.is_(True))
        .first()
    )
def get_caps(
    db: Session,
    q: Optional[str] = None,
    factory_id: Optional[int] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    limit: int = 50,
):
    query = db.query(models.CorrectiveActionPlan).filter(models.CorrectiveActionPlan.is_active.is_(True))
    if factory_id is not None:
        query = query.filter(models.CorrectiveActionPlan.factory_id == factory_id)
    if status:
        query = query.filter(models.CorrectiveActionPlan.status == status)
    if priority:
        query = query.filter(models.CorrectiveActionPlan.priority == priority)
    if q:
        like = f"%{q}%"
        query = query.filter(or_(
            models.CorrectiveActionPlan.title.ilike(like),
            models.CorrectiveActionPlan.description.ilike(like),
        ))
    return query.order_by(models.CorrectiveActionPlan.created_at.desc()).limit(limit).all()

def update_cap_status(db: Session, db_cap: models.CorrectiveActionPlan, new_status: str):
    cap_generation.validate_transition(db_cap.status, new_status)
    db_cap.status = new_status
    db_cap.version = (db_cap.version or 1) + 1
    db.commit()
    db.refresh(db_cap)
    return db_cap

def update_cap_action(db: Session, db_cap: models.CorrectiveActionPlan, action_id: str, update: schemas.ActionStatusUpdate):
    plan = dict(db_cap.action_plan or {})
    actions = [dict(a) for a in plan.get("actions", [])]
    for action in actions:
        if action["id"] == action_id:
            action["status"] = update.status
            if update.responsible:
                action["responsible"] = update.responsible
            break
    else:
        raise LookupError(f"Action not found: {action_id}")
    plan["actions"] = actions
    # JSON columns only persist on reassignment
    db_cap.action_plan = plan
    db_cap.version = (db_cap.version or 1) + 1
    db.commit()
    db.refresh(db_cap)
    return db_cap

def cap_to_dict(db_cap: models.CorrectiveActionPlan) -> Dict[str, Any]:
    return schemas.CAP.model_validate(db_cap).model_dump(mode="json")

# ---------------------------
# Grievances
# ---------------------------

def _unique_case_number(db: Session, now) -> str:
    while True:
        number = grievance_triage.generate_case_number(now)
        if not db.query(models.Grievance).filter(models.Grievance.case_number == number).first():
            return number

def create_grievance(db: Session, grievance: schemas.GrievanceCreate, user: models.User, now=None):
    """Open a case and run automatic triage on it.

    The case is written with status `intake`, then triage sets the triaged
    priority/risk, records the triage result and moves it to `triage`.
    """
    now = now or utcnow()
    sla_days = grievance_triage.calculate_sla_days(grievance.category, grievance.priority)
    due_date = now + timedelta(days=sla_days)
    worker_id = user.id if user.role == "worker" else None

    db_grievance = models.Grievance(
        id=grievance_triage.generate_case_id(),
        case_number=_unique_case_number(db, now),
        worker_id=worker_id,
        worker_name=grievance.worker_name or (user.full_name if worker_id else None),
        factory_id=grievance.factory_id if grievance.factory_id is not None else user.factory_id,
        organization_id=user.organization_id,
        category=grievance.category,
        subcategory=grievance.subcategory,
        description=grievance.description,
        priority=grievance.priority,
        status="intake",
        confidential=grievance.confidential,
        risk_level=grievance_triage.assess_initial_risk(grievance.category, grievance.subcategory, grievance.description),
        sla_days=sla_days,
        due_date=due_date,
        source=grievance.source,
        timeline={"intake": now.isoformat()},
        notes=[],
        escalation_history=[],
        created_by_id=user.id,
        created_at=now,
    )
    db.add(db_grievance)
    db.commit()

    triage = grievance_triage.perform_triage(
        {**grievance.model_dump(), "due_date": due_date},
        now,
    )
    db_grievance.priority = triage["priority"]
    db_grievance.risk_level = triage["risk_level"]
    db_grievance.triage_result = triage
    db_grievance.status = "triage"
    db_grievance.timeline = {**(db_grievance.timeline or {}), "triage": now.isoformat()}
    db.commit()
    db.refresh(db_grievance)
    logger.info("Grievance %s triaged as %s", db_grievance.case_number, triage["priority"])
    return db_grievance

def get_grievance(db: Session, grievance_id: str):
    return (
        db.query(models.Grievance)
        .filter(models.Grievance.id == grievance_id, models.Grievance.is_active.is_(True))
        .first()
    )
def get_grievances(
    db: Session,
    q: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    factory_id: Optional[int] = None,
    worker_id: Optional[int] = None,
    investigator_id: Optional[int] = None,
    exclude_confidential: bool = False,
    limit: int = 50,
):
    query = db.query(models.Grievance).filter(models.Grievance.is_active.is_(True))
    if status:
        query = query.filter(models.Grievance.status == status)
    if category:
        query = query.filter(models.Grievance.category == category)
    if priority:
        query = query.filter(models.Grievance.priority == priority)
    if factory_id is not None:
        query = query.filter(models.Grievance.factory_id == factory_id)
    if worker_id is not None:
        query = query.filter(models.Grievance.worker_id == worker_id)
    if investigator_id is not None:
        query = query.filter(models.Grievance.investigator_id == investigator_id)
    if exclude_confidential:
        query = query.filter(models.Grievance.confidential.is_(False))
    if q:
        like = f"%{q}%"
        query = query.filter(or_(
            models.Grievance.description.ilike(like),
            models.Grievance.worker_name.ilike(like),
            models.Grievance.category.ilike(like),
        ))
    return query.order_by(models.Grievance.created_at.desc()).limit(limit).all()

def investigator_workload(db: Session, investigator_id: int) -> int:
    return (
        db.query(func.count(models.Grievance.id))
        .filter(
            models.Grievance.investigator_id == investigator_id,
            models.Grievance.status.in_(grievance_triage.OPEN_INVESTIGATION_STATUSES),
            models.Grievance.is_active.is_(True),
        )
        .scalar()
        or 0
    )

def assign_grievance(db: Session, db_grievance: models.Grievance, assign: schemas.GrievanceAssign, assigned_by: models.User, now=None):
    now = now or utcnow()
    workload = investigator_workload(db, assign.investigator_id)
    db_grievance.assignment = {
        "investigator_id": assign.investigator_id,
        "assigned_at": now.isoformat(),
        "assigned_by": assigned_by.id,
        "expected_completion": grievance_triage.expected_completion(now).isoformat(),
        "notes": assign.notes or "",
        "workload": workload,
    }
    db_grievance.investigator_id = assign.investigator_id
    db_grievance.status = "assigned"
    db_grievance.timeline = {**(db_grievance.timeline or {}), "assignment": now.isoformat()}
    db.commit()
    db.refresh(db_grievance)
    logger.info("Grievance %s assigned to %s (workload %d)", db_grievance.case_number, assign.investigator_id, workload)
    return db_grievance

def update_grievance_status(db: Session, db_grievance: models.Grievance, update: schemas.GrievanceStatusUpdate, author: models.User, now=None):
    now = now or utcnow()
    stamp = now.isoformat()
    timeline = dict(db_grievance.timeline or {})
    for key in grievance_triage.timeline_keys(update.status):
        timeline[key] = stamp
    db_grievance.timeline = timeline

    if update.notes:
        db_grievance.notes = [*(db_grievance.notes or []), {
            "type": "status_change",
            "content": f"Status changed to: {update.status}",
            "details": update.notes,
            "timestamp": stamp,
            "author": author.id,
        }]

    breach = grievance_triage.check_sla_breach(db_grievance.due_date, update.status, now)
    if breach["breached"]:
        db_grievance.sla_breach = breach
        db_grievance.escalation_history = [*(db_grievance.escalation_history or []), {
            "type": "sla_breach",
            "timestamp": stamp,
            "details": breach,
        }]
        logger.warning("Grievance %s breached SLA by %dh", db_grievance.case_number, breach["breach_hours"])

    db_grievance.status = update.status
    db.commit()
    db.refresh(db_grievance)
    return db_grievance

def grievance_to_dict(db_grievance: models.Grievance) -> Dict[str, Any]:
    data = schemas.Grievance.model_validate(db_grievance).model_dump(mode="json")
    data["created_at"] = as_utc(db_grievance.created_at).isoformat()
    return data

# ---------------------------
# Requirements / checklists / evidence
# ---------------------------

def get_requirement(db: Session, requirement_id: int):
    return db.query(models.Requirement).filter(models.Requirement.id == requirement_id).first()
def create_requirement(db: Session, requirement: schemas.RequirementCreate, user_id: Optional[int]):
    db_requirement = models.Requirement(
        **requirement.model_dump(),
        status="active",
        compliance_score=0,
        risk_level="medium",
        evidence_count=0,
        created_by_id=user_id,
    )
    db.add(db_requirement)
    db.commit()
    db.refresh(db_requirement)
    return db_requirement
def update_requirement(db: Session, db_requirement: models.Requirement, update: schemas.RequirementUpdate):
    for key, value in update.model_dump(exclude_unset=True).items():
        setattr(db_requirement, key, value)
    db.commit()
    db.refresh(db_requirement)
    return db_requirement

def get_checklist(db: Session, checklist_id: str):
    return db.query(models.AuditChecklist).filter(models.AuditChecklist.id == checklist_id).first()

def get_evidence_document(db: Session, document_id: int):
    return db.query(models.EvidenceDocument).filter(models.EvidenceDocument.id == document_id).first()

def grievances_for_stats(db: Session, factory_id: Optional[int] = None) -> List[Dict[str, Any]]:
    query = db.query(models.Grievance).filter(models.Grievance.is_active.is_(True))
    if factory_id is not None:
        query = query.filter(models.Grievance.factory_id == factory_id)
    return [grievance_to_dict(g) for g in query.all()]

# ---------------------------
# Permits / certificates
# ---------------------------

def get_permit(db: Session, permit_id: str):
    return (
        db.query(models.Permit)
        .filter(models.Permit.id == permit_id, models.Permit.is_active.is_(True))
        .first()
    )
def get_permit_by_number(db: Session, factory_id: int, number: str):
    return (
        db.query(models.Permit)
        .filter(models.Permit.factory_id == factory_id, models.Permit.number == number, models.Permit.is_active.is_(True))
        .first()
    )

def create_permit(db: Session, permit: schemas.PermitCreate, user_id: Optional[int], now=None):
    permit_rules.validate_dates(permit.issued_date, permit.expiry_date)
    db_permit = models.Permit(
        id=permit_rules.generate_permit_id(),
        **permit.model_dump(),
        status=permit_rules.initial_status(permit.expiry_date, now),
        renewals=[],
        created_by_id=user_id,
    )
    db.add(db_permit)
    db.commit()
    db.refresh(db_permit)
    logger.info("Permit %s (%s) created for factory %s as %s", db_permit.number, db_permit.permit_type, db_permit.factory_id, db_permit.status)
    return db_permit

def get_permits(
    db: Session,
    q: Optional[str] = None,
    permit_type: Optional[str] = None,
    status: Optional[str] = None,
    factory_id: Optional[int] = None,
    issued_by: Optional[str] = None,
    expiry_from=None,
    expiry_to=None,
    expiring: bool = False,
    expired: bool = False,
    page: int = 1,
    limit: int = 10,
    now=None,
):
    now = now or utcnow()
    query = db.query(models.Permit).filter(models.Permit.is_active.is_(True))
    if factory_id is not None:
        query = query.filter(models.Permit.factory_id == factory_id)
    if q:
        like = f"%{q}%"
        query = query.filter(or_(
            models.Permit.title.ilike(like),
            models.Permit.number.ilike(like),
            models.Permit.description.ilike(like),
            models.Permit.issued_by.ilike(like),
        ))
    if permit_type:
        query = query.filter(models.Permit.permit_type == permit_type)
    if status:
        query = query.filter(models.Permit.status == status)
    if issued_by:
        query = query.filter(models.Permit.issued_by.ilike(f"%{issued_by}%"))
    if expiry_from:
        query = query.filter(models.Permit.expiry_date >= as_utc(expiry_from))
    if expiry_to:
        query = query.filter(models.Permit.expiry_date <= as_utc(expiry_to))
    if expiring:
        horizon = now + timedelta(days=permit_rules.EXPIRING_WITHIN_DAYS)
        query = query.filter(models.Permit.status == "valid", models.Permit.expiry_date <= horizon)
    if expired:
        query = query.filter(models.Permit.status == "expired")

    total = query.count()
    rows = (
        query.order_by(models.Permit.created_at.desc(), models.Permit.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": rows,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }

def update_permit(db: Session, db_permit: models.Permit, update: schemas.PermitUpdate, now=None):
    changes = update.model_dump(exclude_unset=True)
    issued = changes.get("issued_date") or db_permit.issued_date
    expiry = changes.get("expiry_date") or db_permit.expiry_date
    permit_rules.validate_dates(issued, expiry)
    if db_permit.status == "revoked":
        changes.pop("status", None)
    for key, value in changes.items():
        setattr(db_permit, key, value)
    if "expiry_date" in changes:
        db_permit.status = permit_rules.status_after_expiry_change(db_permit.status, changes["expiry_date"], now)
    db.commit()
    db.refresh(db_permit)
    return db_permit

def renew_permit(db: Session, db_permit: models.Permit, renew: schemas.PermitRenew, user_id: Optional[int], now=None):
    record = permit_rules.renewal_record(
        db_permit.status, db_permit.expiry_date, renew.new_expiry_date, user_id, renew.notes, now,
    )
    db_permit.expiry_date = renew.new_expiry_date
    db_permit.status = "valid"
    db_permit.renewals = [*(db_permit.renewals or []), record]
    db.commit()
    db.refresh(db_permit)
    logger.info("Permit %s renewed until %s", db_permit.number, record["new_expiry_date"])
    return db_permit

def revoke_permit(db: Session, db_permit: models.Permit, reason: str, user_id: Optional[int], now=None):
    db_permit.revocation = permit_rules.revocation_record(db_permit.status, reason, user_id, now)
    db_permit.status = "revoked"
    db.commit()
    db.refresh(db_permit)
    logger.warning("Permit %s revoked: %s", db_permit.number, reason)
    return db_permit

def permit_to_dict(db_permit: models.Permit) -> Dict[str, Any]:
    return {
        "id": db_permit.id,
        "title": db_permit.title,
        "number": db_permit.number,
        "permit_type": db_permit.permit_type,
        "status": db_permit.status,
        "factory_id": db_permit.factory_id,
        "expiry_date": as_utc(db_permit.expiry_date),
    }

def permits_for_stats(db: Session, factory_id: Optional[int] = None) -> List[Dict[str, Any]]:
    query = db.query(models.Permit).filter(models.Permit.is_active.is_(True))
    if factory_id is not None:
        query = query.filter(models.Permit.factory_id == factory_id)
    return [permit_to_dict(p) for p in query.all()]

def check_expiring_permits(db: Session, factory_id: Optional[int] = None, now=None) -> Dict[str, Any]:
    """Mark lapsed permits expired and report the ones expiring soon."""
    now = now or utcnow()
    query = db.query(models.Permit).filter(models.Permit.is_active.is_(True), models.Permit.status == "valid")
    if factory_id is not None:
        query = query.filter(models.Permit.factory_id == factory_id)
    rows = {p.id: p for p in query.all()}
    permits = [permit_to_dict(p) for p in rows.values()]

    lapsed = permit_rules.lapsed_permits(permits, now)
    for p in lapsed:
        rows[p["id"]].status = "expired"
    if lapsed:
        db.commit()
        logger.info("Marked %d permits expired", len(lapsed))

    lapsed_ids = {p["id"] for p in lapsed}
    expiring = permit_rules.expiring_permits([p for p in permits if p["id"] not in lapsed_ids], now)
    for p in expiring:
        logger.warning("Permit %s (%s) expires on %s", p["title"], p["number"], p["expiry_date"])
    return {"expired": [p["id"] for p in lapsed], "expiring": expiring}

# ---------------------------
# Trainings
# ---------------------------

def get_training(db: Session, training_id: str):
    return (
        db.query(models.Training)
        .filter(models.Training.id == training_id, models.Training.is_active.is_(True))
        .first()
    )

def create_training(db: Session, training: schemas.TrainingCreate, user_id: Optional[int]):
    db_training = models.Training(
        id=training_rules.generate_training_id(),
        **training.model_dump(),
        status="draft",
        materials=[],
        assessments=[],
        created_by_id=user_id,
    )
    db.add(db_training)
    db.commit()
    db.refresh(db_training)
    logger.info("Training %s created for factory %s", db_training.id, db_training.factory_id)
    return db_training

def get_trainings(
    db: Session,
    q: Optional[str] = None,
    training_type: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    factory_id: Optional[int] = None,
    department: Optional[str] = None,
    instructor_id: Optional[int] = None,
    date_from=None,
    date_to=None,
    page: int = 1,
    limit: int = 10,
):
    query = db.query(models.Training).filter(models.Training.is_active.is_(True))
    if factory_id is not None:
        query = query.filter(models.Training.factory_id == factory_id)
    if q:
        like = f"%{q}%"
        query = query.filter(or_(
            models.Training.title.ilike(like),
            models.Training.description.ilike(like),
            models.Training.category.ilike(like),
        ))
    if training_type:
        query = query.filter(models.Training.training_type == training_type)
    if category:
        query = query.filter(models.Training.category == category)
    if status:
        query = query.filter(models.Training.status == status)
    if department:
        query = query.filter(models.Training.department == department)
    if instructor_id is not None:
        query = query.filter(models.Training.instructor_id == instructor_id)
    if date_from:
        query = query.filter(models.Training.scheduled_date >= as_utc(date_from))
    if date_to:
        query = query.filter(models.Training.scheduled_date <= as_utc(date_to))

    total = query.count()
    rows = (
        query.order_by(models.Training.created_at.desc(), models.Training.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": rows,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }

def update_training(db: Session, db_training: models.Training, update: schemas.TrainingUpdate):
    for key, value in update.model_dump(exclude_unset=True).items():
        setattr(db_training, key, value)
    db.commit()
    db.refresh(db_training)
    return db_training

def advance_training(db: Session, db_training: models.Training, operation: str,
                     schedule: Optional[schemas.TrainingSchedule] = None, now=None):
    """Apply a lifecycle operation (`schedule`, `start`, `complete`)."""
    now = now or utcnow()
    status = training_rules.next_status(db_training.status, operation)
    if operation == "schedule":
        db_training.scheduled_date = schedule.scheduled_date
        db_training.location = schedule.location
    elif operation == "start":
        db_training.actual_start = now
    elif operation == "complete":
        db_training.actual_end = now
    db_training.status = status
    db.commit()
    db.refresh(db_training)
    logger.info("Training %s is now %s", db_training.id, status)
    return db_training

def add_training_material(db: Session, db_training: models.Training, material: schemas.TrainingMaterialCreate):
    db_training.materials = training_rules.add_material(db_training.materials or [], material.model_dump())
    db.commit()
    db.refresh(db_training)
    return db_training

def add_training_assessment(db: Session, db_training: models.Training, assessment: schemas.TrainingAssessmentCreate):
    built = training_rules.build_assessment(assessment.model_dump())
    db_training.assessments = [*(db_training.assessments or []), built]
    db.commit()
    db.refresh(db_training)
    return built

def get_attendance(db: Session, training_id: str, user_id: int):
    return (
        db.query(models.TrainingAttendance)
        .filter(models.TrainingAttendance.training_id == training_id, models.TrainingAttendance.user_id == user_id)
        .first()
    )

def record_attendance(db: Session, db_training: models.Training, attendance: schemas.AttendanceCreate, recorded_by_id: Optional[int], now=None):
    if get_attendance(db, db_training.id, attendance.user_id):
        raise ValueError("User has already attended this training")
    if db_training.max_participants and len(db_training.attendances) >= db_training.max_participants:
        raise ValueError("Training is full")
    db_attendance = models.TrainingAttendance(
        training_id=db_training.id,
        user_id=attendance.user_id,
        status=attendance.status,
        attended_at=now or utcnow(),
        recorded_by_id=recorded_by_id,
        submissions=[],
    )
    db.add(db_attendance)
    db.commit()
    db.refresh(db_attendance)
    return db_attendance

def submit_assessment(db: Session, db_training: models.Training, assessment_id: str,
                      submission: schemas.AssessmentSubmission, now=None) -> Dict[str, Any]:
    """Grade a submission and keep it on the attendee's record.

    Raises LookupError for an unknown assessment or attendee and ValueError
    once the allowed attempts are used up.
    """
    assessment = training_rules.find_assessment(db_training.assessments or [], assessment_id)
    if not assessment:
        raise LookupError("Assessment not found")
    db_attendance = get_attendance(db, db_training.id, submission.user_id)
    if not db_attendance:
        raise LookupError("Attendance record not found")
    submissions = db_attendance.submissions or []
    if training_rules.attempts_used(submissions, assessment_id) >= assessment["attempts_allowed"]:
        raise ValueError("No attempts left for this assessment")

    result = training_rules.grade_submission(assessment, submission.answers, now)
    db_attendance.submissions = [*submissions, result]
    db_attendance.best_score = max(db_attendance.best_score or 0, result["percentage"])
    db.commit()
    return result

def issue_certificate(db: Session, db_training: models.Training, user_id: int, now=None):
    now = now or utcnow()
    db_attendance = get_attendance(db, db_training.id, user_id)
    if not db_attendance:
        raise LookupError("Attendance record not found")
    blocker = training_rules.certificate_blocker(
        db_training.status,
        db_attendance.status,
        db_training.assessment_required,
        db_attendance.best_score,
        db_training.passing_score,
        bool(db_attendance.certificate_number),
    )
    if blocker:
        raise ValueError(blocker)
    db_attendance.certificate_number = training_rules.generate_certificate_number(now)
    db_attendance.certificate_issued_at = now
    db_attendance.certificate_valid_until = training_rules.certificate_valid_until(
        db_training.category, now, db_training.validity_period,
    )
    db.commit()
    db.refresh(db_attendance)
    logger.info("Certificate %s issued for training %s", db_attendance.certificate_number, db_training.id)
    return db_attendance

def training_statistics(db: Session, factory_id: Optional[int] = None) -> Dict[str, Any]:
    query = db.query(models.Training).filter(models.Training.is_active.is_(True))
    attendances = (
        db.query(func.count(models.TrainingAttendance.id))
        .select_from(models.TrainingAttendance)
        .join(models.Training)
        .filter(models.Training.is_active.is_(True))
    )
    if factory_id is not None:
        query = query.filter(models.Training.factory_id == factory_id)
        attendances = attendances.filter(models.Training.factory_id == factory_id)
    rows = [
        {
            "id": t.id,
            "title": t.title,
            "status": t.status,
            "training_type": t.training_type,
            "factory_id": t.factory_id,
            "created_at": t.created_at,
        }
        for t in query.all()
    ]
    return training_rules.training_statistics(rows, attendances.scalar() or 0)
