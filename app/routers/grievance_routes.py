from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db, request_options
from app.services import grievance_triage
from app.services.audit_log import audit_logger

router = APIRouter(prefix="/grievances", tags=["grievances"])

CASE_HANDLERS = ("super_admin", "factory_admin", "grievance_committee")
CASE_READERS = CASE_HANDLERS + ("hr_staff", "worker")


def _visible(user: models.User, db_grievance: models.Grievance) -> bool:
    if user.role == "worker":
        return db_grievance.worker_id == user.id
    if user.role == "hr_staff" and db_grievance.confidential:
        return False
    scope = auth.scoped_factory_id(user)
    return scope is None or db_grievance.factory_id == scope


def _get_grievance_or_404(db: Session, grievance_id: str, user: models.User) -> models.Grievance:
    db_grievance = crud.get_grievance(db, grievance_id)
    if not db_grievance or not _visible(user, db_grievance):
        raise HTTPException(status_code=404, detail="Grievance not found")
    return db_grievance


@router.post("/", response_model=schemas.Grievance, status_code=201)
def submit_grievance(
    grievance: schemas.GrievanceCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    if grievance.factory_id is not None:
        auth.ensure_factory_access(current_user, grievance.factory_id)
        if not crud.get_factory(db, grievance.factory_id):
            raise HTTPException(status_code=404, detail="Factory not found")

    db_grievance = crud.create_grievance(db, grievance, current_user)
    audit_logger.log_action(
        "grievance_submit", current_user,
        {
            "grievance_id": db_grievance.id,
            "case_number": db_grievance.case_number,
            "factory_id": db_grievance.factory_id,
            "category": db_grievance.category,
            "priority": db_grievance.priority,
            "confidential": db_grievance.confidential,
        },
        **request_options(request),
    )
    return db_grievance


@router.get("/", response_model=List[schemas.Grievance])
def list_grievances(
    q: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    factory_id: Optional[int] = None,
    investigator_id: Optional[int] = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CASE_READERS)),
):
    scope = auth.scoped_factory_id(current_user)
    return crud.get_grievances(
        db,
        q=q,
        status=status,
        category=category,
        priority=priority,
        factory_id=scope if scope is not None else factory_id,
        worker_id=current_user.id if current_user.role == "worker" else None,
        investigator_id=investigator_id,
        exclude_confidential=current_user.role == "hr_staff",
        limit=limit,
    )


@router.get("/categories")
def list_categories(current_user: models.User = Depends(auth.get_current_active_user)):
    return grievance_triage.GRIEVANCE_CATEGORIES


@router.get("/stats")
def grievance_stats(
    time_range: Literal["7d", "30d", "90d", "1y"] = "30d",
    factory_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CASE_HANDLERS)),
):
    scope = auth.scoped_factory_id(current_user)
    rows = crud.grievances_for_stats(db, factory_id=scope if scope is not None else factory_id)
    return grievance_triage.grievance_statistics(rows, time_range)


@router.get("/{grievance_id}", response_model=schemas.Grievance)
def get_grievance(
    grievance_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CASE_READERS)),
):
    return _get_grievance_or_404(db, grievance_id, current_user)


@router.post("/{grievance_id}/assign", response_model=schemas.Grievance)
def assign_grievance(
    grievance_id: str,
    body: schemas.GrievanceAssign,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CASE_HANDLERS)),
):
    db_grievance = _get_grievance_or_404(db, grievance_id, current_user)
    investigator = crud.get_user(db, body.investigator_id)
    if not investigator or not investigator.is_active:
        raise HTTPException(status_code=400, detail="Investigator not found")

    updated = crud.assign_grievance(db, db_grievance, body, current_user)
    audit_logger.log_action(
        "case_update", current_user,
        {
            "grievance_id": grievance_id,
            "factory_id": db_grievance.factory_id,
            "operation": "assign",
            "investigator_id": body.investigator_id,
        },
        **request_options(request),
    )
    return updated


@router.patch("/{grievance_id}/status", response_model=schemas.Grievance)
def update_grievance_status(
    grievance_id: str,
    body: schemas.GrievanceStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CASE_HANDLERS)),
):
    db_grievance = _get_grievance_or_404(db, grievance_id, current_user)
    previous = db_grievance.status
    updated = crud.update_grievance_status(db, db_grievance, body, current_user)
    audit_logger.log_action(
        "case_update", current_user,
        {
            "grievance_id": grievance_id,
            "factory_id": db_grievance.factory_id,
            "previous_status": previous,
            "new_status": body.status,
            "sla_breached": bool((updated.sla_breach or {}).get("breached")),
        },
        **request_options(request),
    )
    return updated
