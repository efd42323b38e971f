from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db, request_options
from app.services import standards_registry
from app.services.audit_log import audit_logger

router = APIRouter(prefix="/audits", tags=["audits"])

AUDIT_WRITERS = ("super_admin", "factory_admin", "auditor")


def get_audit_or_404(db: Session, audit_id: int, user: models.User) -> models.Audit:
    db_audit = crud.get_audit(db, audit_id)
    if not db_audit:
        raise HTTPException(status_code=404, detail="Audit not found")
    auth.ensure_factory_access(user, db_audit.factory_id)
    return db_audit


@router.post("/", response_model=schemas.Audit, status_code=201)
def create_audit(
    audit: schemas.AuditCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*AUDIT_WRITERS)),
):
    auth.ensure_factory_access(current_user, audit.factory_id)
    if not crud.get_factory(db, audit.factory_id):
        raise HTTPException(status_code=404, detail="Factory not found")
    try:
        standards_registry.require_standard(audit.standard_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    db_audit = crud.create_audit(db, audit, current_user.id)
    audit_logger.log_action(
        "audit_create", current_user,
        {"audit_id": db_audit.id, "factory_id": db_audit.factory_id, "standard_id": db_audit.standard_id},
        **request_options(request),
    )
    return db_audit


@router.get("/", response_model=List[schemas.Audit])
def list_audits(
    factory_id: Optional[int] = None,
    status: Optional[str] = None,
    standard_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    scope = auth.scoped_factory_id(current_user)
    return crud.get_audits(
        db,
        factory_id=scope if scope is not None else factory_id,
        status=status,
        standard_id=standard_id,
        skip=skip,
        limit=limit,
    )


@router.get("/stats")
def audit_stats(
    factory_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    scope = auth.scoped_factory_id(current_user)
    return crud.get_audit_stats(db, factory_id=scope if scope is not None else factory_id)


@router.get("/{audit_id}", response_model=schemas.Audit)
def get_audit(
    audit_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    return get_audit_or_404(db, audit_id, current_user)


@router.patch("/{audit_id}", response_model=schemas.Audit)
def update_audit(
    audit_id: int,
    audit_update: schemas.AuditUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*AUDIT_WRITERS)),
):
    db_audit = get_audit_or_404(db, audit_id, current_user)
    updated = crud.update_audit(db, db_audit, audit_update)
    audit_logger.log_action(
        "audit_update", current_user,
        {"audit_id": audit_id, "factory_id": db_audit.factory_id, "fields": sorted(audit_update.model_dump(exclude_unset=True))},
        **request_options(request),
    )
    return updated


@router.patch("/{audit_id}/status", response_model=schemas.Audit)
def update_audit_status(
    audit_id: int,
    body: schemas.AuditStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*AUDIT_WRITERS)),
):
    db_audit = get_audit_or_404(db, audit_id, current_user)
    previous = db_audit.status
    try:
        updated = crud.update_audit_status(db, db_audit, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    audit_logger.log_action(
        "audit_update", current_user,
        {"audit_id": audit_id, "factory_id": db_audit.factory_id, "previous_status": previous, "new_status": body.status},
        **request_options(request),
    )
    return updated


@router.post("/{audit_id}/findings", response_model=schemas.Finding, status_code=201)
def add_finding(
    audit_id: int,
    finding: schemas.FindingCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*AUDIT_WRITERS)),
):
    db_audit = get_audit_or_404(db, audit_id, current_user)
    try:
        db_finding = crud.add_finding(db, db_audit, finding)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    audit_logger.log_action(
        "audit_update", current_user,
        {"audit_id": audit_id, "factory_id": db_audit.factory_id, "finding_id": db_finding.id, "severity": db_finding.severity},
        **request_options(request),
    )
    return db_finding
