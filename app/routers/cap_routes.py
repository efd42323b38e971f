from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db, request_options
from app.routers.audit_routes import get_audit_or_404
from app.schemas.caps import GenerateCAPReq
from app.services import cap_generation, standards_registry
from app.services.audit_log import audit_logger

router = APIRouter(tags=["caps"])

CAP_WRITERS = ("super_admin", "factory_admin", "auditor")
CAP_READERS = ("super_admin", "factory_admin", "auditor", "hr_staff")


def _get_cap_or_404(db: Session, cap_id: str, user: models.User) -> models.CorrectiveActionPlan:
    db_cap = crud.get_cap(db, cap_id)
    if not db_cap:
        raise HTTPException(status_code=404, detail="CAP not found")
    auth.ensure_factory_access(user, db_cap.factory_id)
    return db_cap


@router.post("/audits/{audit_id}/caps", response_model=schemas.CAP, status_code=201)
def generate_cap(
    audit_id: int,
    body: GenerateCAPReq,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CAP_WRITERS)),
):
    db_audit = get_audit_or_404(db, audit_id, current_user)
    standard = standards_registry.get_standard(db_audit.standard_id)
    audit_data = crud.audit_data_for(db_audit, standard["name"] if standard else None)

    generated = cap_generation.generate_cap(
        audit_data,
        factory_id=db_audit.factory_id,
        standard_id=db_audit.standard_id,
        priority=body.priority,
        assignee=body.assignee,
    )
    db_cap = crud.create_cap(db, generated, current_user.id)
    audit_logger.log_action(
        "cap_generate", current_user,
        {
            "cap_id": db_cap.id,
            "audit_id": audit_id,
            "factory_id": db_cap.factory_id,
            "priority": db_cap.priority,
            "total_actions": generated.action_plan.total_actions,
        },
        **request_options(request),
    )
    return db_cap


@router.get("/caps", response_model=List[schemas.CAP])
def list_caps(
    q: Optional[str] = None,
    factory_id: Optional[int] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CAP_READERS)),
):
    scope = auth.scoped_factory_id(current_user)
    return crud.get_caps(
        db,
        q=q,
        factory_id=scope if scope is not None else factory_id,
        status=status,
        priority=priority,
        limit=limit,
    )


@router.get("/caps/stats")
def cap_stats(
    factory_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CAP_READERS)),
):
    scope = auth.scoped_factory_id(current_user)
    caps = crud.get_caps(db, factory_id=scope if scope is not None else factory_id, limit=10000)
    return cap_generation.cap_statistics([crud.cap_to_dict(c) for c in caps])


@router.get("/caps/{cap_id}", response_model=schemas.CAP)
def get_cap(
    cap_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CAP_READERS)),
):
    return _get_cap_or_404(db, cap_id, current_user)


@router.patch("/caps/{cap_id}/status", response_model=schemas.CAP)
def update_cap_status(
    cap_id: str,
    body: schemas.CAPStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CAP_WRITERS)),
):
    db_cap = _get_cap_or_404(db, cap_id, current_user)
    previous = db_cap.status
    try:
        updated = crud.update_cap_status(db, db_cap, body.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    audit_logger.log_action(
        "cap_update", current_user,
        {"cap_id": cap_id, "factory_id": db_cap.factory_id, "previous_status": previous, "new_status": body.status},
        **request_options(request),
    )
    return updated


@router.patch("/caps/{cap_id}/actions/{action_id}", response_model=schemas.CAP)
def update_cap_action(
    cap_id: str,
    action_id: str,
    body: schemas.ActionStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*CAP_WRITERS)),
):
    db_cap = _get_cap_or_404(db, cap_id, current_user)
    try:
        updated = crud.update_cap_action(db, db_cap, action_id, body)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    audit_logger.log_action(
        "cap_update", current_user,
        {"cap_id": cap_id, "factory_id": db_cap.factory_id, "action_id": action_id, "action_status": body.status},
        **request_options(request),
    )
    return updated
