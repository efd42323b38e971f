from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db, request_options
from app.services.audit_log import audit_logger

router = APIRouter()

@router.post("/token", response_model=schemas.Token)
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    user = crud.get_user_by_email(db, email=form_data.username)
    if not user or not auth.verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    access_token_expires = timedelta(minutes=auth.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = auth.create_access_token(
        data={"sub": user.email, "role": user.role}, expires_delta=access_token_expires
    )
    audit_logger.log_action("user_login", user, {"method": "password"}, **request_options(request))
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/users/", response_model=schemas.User)
def create_user(
    user: schemas.UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*auth.ADMIN_ROLES)),
):
    if current_user.role == "factory_admin":
        if user.role in auth.ADMIN_ROLES:
            raise HTTPException(status_code=403, detail="Factory admins cannot create admin users")
        if user.factory_id is None:
            user.factory_id = current_user.factory_id
        auth.ensure_factory_access(current_user, user.factory_id)

    db_user = crud.get_user_by_email(db, email=user.email)
    if db_user:
        raise HTTPException(status_code=400, detail="Email already registered")
    if user.factory_id is not None and not crud.get_factory(db, user.factory_id):
        raise HTTPException(status_code=400, detail="Factory not found")
    created = crud.create_user(db=db, user=user)
    audit_logger.log_action(
        "user_management", current_user,
        {"operation": "create", "target_user_id": created.id, "role": created.role, "factory_id": created.factory_id},
        **request_options(request),
    )
    return created

@router.get("/users/me/", response_model=schemas.User)
async def read_users_me(
    current_user: models.User = Depends(auth.get_current_active_user),
):
    return current_user

@router.get("/users/", response_model=List[schemas.User])
def list_users(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*auth.ADMIN_ROLES)),
):
    return crud.get_users(db, factory_id=auth.scoped_factory_id(current_user), skip=skip, limit=limit)

@router.patch("/users/{user_id}/role", response_model=schemas.User)
def change_role(
    user_id: int,
    body: schemas.RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles("super_admin")),
):
    db_user = crud.get_user(db, user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    previous = db_user.role
    updated = crud.update_user_role(db, db_user, body.role)
    audit_logger.log_action(
        "role_assignment", current_user,
        {"target_user_id": user_id, "previous_role": previous, "new_role": body.role, "factory_id": db_user.factory_id},
        **request_options(request),
    )
    return updated

@router.post("/users/{user_id}/deactivate", response_model=schemas.User)
def deactivate_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*auth.ADMIN_ROLES)),
):
    db_user = crud.get_user(db, user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    auth.ensure_factory_access(current_user, db_user.factory_id)
    if db_user.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate yourself")
    updated = crud.deactivate_user(db, db_user)
    audit_logger.log_action(
        "user_management", current_user,
        {"operation": "deactivate", "target_user_id": user_id, "factory_id": db_user.factory_id},
        **request_options(request),
    )
    return updated
