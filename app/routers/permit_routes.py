from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db, request_options
from app.services import permit_rules
from app.services.audit_log import audit_logger

router = APIRouter(prefix="/permits", tags=["permits"])

PERMIT_MANAGERS = ("super_admin", "factory_admin", "hr_staff")
PERMIT_REVOKERS = ("super_admin", "factory_admin")


def get_permit_or_404(db: Session, permit_id: str, user: models.User) -> models.Permit:
    db_permit = crud.get_permit(db, permit_id)
    if not db_permit:
        raise HTTPException(status_code=404, detail="Permit not found")
    auth.ensure_factory_access(user, db_permit.factory_id)
    return db_permit


def _with_expiry(db_permit: models.Permit) -> schemas.PermitDetail:
    base = schemas.Permit.model_validate(db_permit).model_dump()
    return schemas.PermitDetail(
        **base,
        expiry=permit_rules.expiry_details(db_permit.expiry_date),
        reminders=permit_rules.reminder_schedule(db_permit.title, db_permit.expiry_date),
    )


def _scope(user: models.User, factory_id: Optional[int]) -> Optional[int]:
    scope = auth.scoped_factory_id(user)
    return scope if scope is not None else factory_id


@router.post("/", response_model=schemas.PermitDetail, status_code=201)
def create_permit(
    permit: schemas.PermitCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_MANAGERS)),
):
    auth.ensure_factory_access(current_user, permit.factory_id)
    factory = crud.get_factory(db, permit.factory_id)
    if not factory:
        raise HTTPException(status_code=404, detail="Factory not found")
    if crud.get_permit_by_number(db, permit.factory_id, permit.number):
        raise HTTPException(status_code=409, detail="Permit with this number already exists for this factory")
    try:
        db_permit = crud.create_permit(db, permit, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    audit_logger.log_action(
        "permit_create", current_user,
        {
            "permit_id": db_permit.id,
            "factory_id": db_permit.factory_id,
            "factory_name": factory.name,
            "permit_number": db_permit.number,
            "permit_type": db_permit.permit_type,
        },
        **request_options(request),
    )
    return _with_expiry(db_permit)


@router.get("/", response_model=schemas.PermitPage)
def list_permits(
    q: Optional[str] = None,
    permit_type: Optional[str] = None,
    status: Optional[str] = None,
    factory_id: Optional[int] = None,
    issued_by: Optional[str] = None,
    expiry_from: Optional[datetime] = None,
    expiry_to: Optional[datetime] = None,
    expiring: bool = False,
    expired: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_MANAGERS)),
):
    return crud.get_permits(
        db,
        q=q,
        permit_type=permit_type,
        status=status,
        factory_id=_scope(current_user, factory_id),
        issued_by=issued_by,
        expiry_from=expiry_from,
        expiry_to=expiry_to,
        expiring=expiring,
        expired=expired,
        page=page,
        limit=limit,
    )


@router.get("/types")
def list_permit_types(current_user: models.User = Depends(auth.get_current_active_user)):
    return permit_rules.PERMIT_TYPES


@router.get("/stats")
def permit_stats(
    factory_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_MANAGERS)),
):
    return permit_rules.permit_statistics(crud.permits_for_stats(db, _scope(current_user, factory_id)))


@router.get("/expiring")
def expiring_permits(
    days: int = Query(permit_rules.EXPIRING_WITHIN_DAYS, ge=1, le=365),
    factory_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_MANAGERS)),
):
    permits = crud.permits_for_stats(db, _scope(current_user, factory_id))
    return permit_rules.expiring_permits(permits, within_days=days)


@router.get("/expired", response_model=schemas.PermitPage)
def expired_permits(
    factory_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_MANAGERS)),
):
    return crud.get_permits(db, factory_id=_scope(current_user, factory_id), expired=True, page=page, limit=limit)


@router.post("/check-expiring")
def check_expiring(
    request: Request,
    factory_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_REVOKERS)),
):
    result = crud.check_expiring_permits(db, _scope(current_user, factory_id))
    audit_logger.log_action(
        "permit_expiry_check", current_user,
        {"factory_id": _scope(current_user, factory_id), "expired": result["expired"], "expiring": len(result["expiring"])},
        **request_options(request),
    )
    return result


@router.get("/{permit_id}", response_model=schemas.PermitDetail)
def get_permit(
    permit_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_MANAGERS)),
):
    return _with_expiry(get_permit_or_404(db, permit_id, current_user))


@router.put("/{permit_id}", response_model=schemas.PermitDetail)
def update_permit(
    permit_id: str,
    body: schemas.PermitUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_MANAGERS)),
):
    db_permit = get_permit_or_404(db, permit_id, current_user)
    if body.number and body.number != db_permit.number:
        if crud.get_permit_by_number(db, db_permit.factory_id, body.number):
            raise HTTPException(status_code=409, detail="Permit with this number already exists for this factory")
    try:
        updated = crud.update_permit(db, db_permit, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    audit_logger.log_action(
        "permit_update", current_user,
        {
            "permit_id": permit_id,
            "factory_id": db_permit.factory_id,
            "permit_number": updated.number,
            "fields": sorted(body.model_dump(exclude_unset=True)),
        },
        **request_options(request),
    )
    return _with_expiry(updated)


@router.post("/{permit_id}/renew", response_model=schemas.PermitDetail)
def renew_permit(
    permit_id: str,
    body: schemas.PermitRenew,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_MANAGERS)),
):
    db_permit = get_permit_or_404(db, permit_id, current_user)
    try:
        renewed = crud.renew_permit(db, db_permit, body, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    audit_logger.log_action(
        "permit_renew", current_user,
        {
            "permit_id": permit_id,
            "factory_id": db_permit.factory_id,
            "permit_number": renewed.number,
            "new_expiry_date": body.new_expiry_date,
            "notes": body.notes,
        },
        **request_options(request),
    )
    return _with_expiry(renewed)


@router.post("/{permit_id}/revoke", response_model=schemas.PermitDetail)
def revoke_permit(
    permit_id: str,
    body: schemas.PermitRevoke,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*PERMIT_REVOKERS)),
):
    db_permit = get_permit_or_404(db, permit_id, current_user)
    try:
        revoked = crud.revoke_permit(db, db_permit, body.reason, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    audit_logger.log_action(
        "permit_revoke", current_user,
        {"permit_id": permit_id, "factory_id": db_permit.factory_id, "permit_number": revoked.number, "reason": body.reason},
        **request_options(request),
    )
    return _with_expiry(revoked)
