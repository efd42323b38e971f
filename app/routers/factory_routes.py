from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db

router = APIRouter(prefix="/factories", tags=["factories"])


def _get_factory_or_404(db: Session, factory_id: int, user: models.User) -> models.Factory:
    auth.ensure_factory_access(user, factory_id)
    db_factory = crud.get_factory(db, factory_id)
    if not db_factory:
        raise HTTPException(status_code=404, detail="Factory not found")
    return db_factory


@router.post("/", response_model=schemas.Factory, status_code=201)
def create_factory(
    factory: schemas.FactoryCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles("super_admin")),
):
    if crud.get_factory_by_code(db, factory.code):
        raise HTTPException(status_code=400, detail="Factory code already exists")
    return crud.create_factory(db, factory)


@router.get("/", response_model=List[schemas.Factory])
def list_factories(
    search: Optional[str] = None,
    country: Optional[str] = None,
    industry: Optional[str] = None,
    is_active: Optional[bool] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    return crud.get_factories(
        db,
        search=search,
        country=country,
        industry=industry,
        is_active=is_active,
        factory_id=auth.scoped_factory_id(current_user),
        skip=skip,
        limit=limit,
    )


@router.get("/{factory_id}", response_model=schemas.Factory)
def get_factory(
    factory_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    return _get_factory_or_404(db, factory_id, current_user)


@router.patch("/{factory_id}", response_model=schemas.Factory)
def update_factory(
    factory_id: int,
    factory_update: schemas.FactoryUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*auth.ADMIN_ROLES)),
):
    db_factory = _get_factory_or_404(db, factory_id, current_user)
    return crud.update_factory(db, db_factory, factory_update)


@router.get("/{factory_id}/stats")
def factory_stats(
    factory_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    _get_factory_or_404(db, factory_id, current_user)
    return crud.get_factory_stats(db, factory_id)
