from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db
from app.services import standards_registry

router = APIRouter(tags=["standards"])

REGISTRY_WRITERS = ("super_admin", "factory_admin", "auditor")


def _scoped(user: models.User, factory_id: Optional[int]) -> Optional[int]:
    scope = auth.scoped_factory_id(user)
    if scope is not None:
        if factory_id is not None and factory_id != scope:
            raise HTTPException(status_code=403, detail="Access to this factory is not allowed")
        return scope
    return factory_id


# ---------------------------
# Catalog
# ---------------------------

@router.get("/standards")
def list_standards(category: Optional[str] = None, current_user: models.User = Depends(auth.get_current_active_user)):
    return standards_registry.list_standards(category)


@router.get("/standards/categories")
def list_categories(current_user: models.User = Depends(auth.get_current_active_user)):
    return standards_registry.list_categories()


@router.get("/standards/buyer-programs")
def list_buyer_programs(current_user: models.User = Depends(auth.get_current_active_user)):
    return standards_registry.list_buyer_programs()


@router.get("/standards/search")
def search_standards(q: str, current_user: models.User = Depends(auth.get_current_active_user)):
    return standards_registry.search_standards(q)


@router.get("/standards/category/{category}")
def standards_by_category(category: str, current_user: models.User = Depends(auth.get_current_active_user)):
    return standards_registry.standards_by_category(category)


@router.get("/standards/{standard_id}")
def get_standard(standard_id: str, current_user: models.User = Depends(auth.get_current_active_user)):
    standard = standards_registry.get_standard(standard_id)
    if standard is None:
        raise HTTPException(status_code=404, detail="Standard not found")
    return standard


@router.get("/standards/{standard_id}/compliance-score")
def compliance_score(
    standard_id: str,
    factory_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    return standards_registry.compliance_score(db, standard_id, _scoped(current_user, factory_id))


@router.get("/standards/{standard_id}/readiness")
def audit_readiness(
    standard_id: str,
    factory_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    factory_id = _scoped(current_user, factory_id)
    if not crud.get_factory(db, factory_id):
        raise HTTPException(status_code=404, detail="Factory not found")
    try:
        return standards_registry.audit_readiness(db, factory_id, standard_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ---------------------------
# Requirements
# ---------------------------

@router.post("/requirements", response_model=schemas.Requirement, status_code=201)
def create_requirement(
    requirement: schemas.RequirementCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*REGISTRY_WRITERS)),
):
    requirement.factory_id = _scoped(current_user, requirement.factory_id)
    try:
        standards_registry.require_standard(requirement.standard_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return crud.create_requirement(db, requirement, current_user.id)


@router.get("/requirements", response_model=List[schemas.Requirement])
def list_requirements(
    standard_id: str,
    factory_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    return standards_registry.requirements_for(
        db, standard_id, factory_id=_scoped(current_user, factory_id), status=status, limit=limit
    )


@router.patch("/requirements/{requirement_id}", response_model=schemas.Requirement)
def update_requirement(
    requirement_id: int,
    update: schemas.RequirementUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*REGISTRY_WRITERS)),
):
    db_requirement = crud.get_requirement(db, requirement_id)
    if not db_requirement:
        raise HTTPException(status_code=404, detail="Requirement not found")
    auth.ensure_factory_access(current_user, db_requirement.factory_id)
    return crud.update_requirement(db, db_requirement, update)


# ---------------------------
# Checklists
# ---------------------------

@router.post("/checklists", response_model=schemas.Checklist, status_code=201)
def generate_checklist(
    body: schemas.ChecklistCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*REGISTRY_WRITERS)),
):
    try:
        return standards_registry.generate_checklist(
            db,
            body.standard_id,
            factory_id=_scoped(current_user, body.factory_id),
            audit_type=body.audit_type,
            focus_areas=body.focus_areas,
            generated_by_id=current_user.id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/checklists", response_model=List[schemas.Checklist])
def list_checklists(
    factory_id: Optional[int] = None,
    standard_id: Optional[str] = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    return standards_registry.list_checklists(
        db, factory_id=_scoped(current_user, factory_id), standard_id=standard_id, limit=limit
    )


@router.get("/checklists/{checklist_id}", response_model=schemas.Checklist)
def get_checklist(
    checklist_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    checklist = crud.get_checklist(db, checklist_id)
    if not checklist:
        raise HTTPException(status_code=404, detail="Checklist not found")
    auth.ensure_factory_access(current_user, checklist.factory_id)
    return checklist


@router.patch("/checklists/{checklist_id}/items/{item_id}", response_model=schemas.Checklist)
def update_checklist_item(
    checklist_id: str,
    item_id: str,
    body: schemas.ChecklistItemUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*REGISTRY_WRITERS)),
):
    checklist = crud.get_checklist(db, checklist_id)
    if not checklist:
        raise HTTPException(status_code=404, detail="Checklist not found")
    auth.ensure_factory_access(current_user, checklist.factory_id)
    try:
        return standards_registry.update_checklist_item(db, checklist, item_id, body.status, body.notes)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
