from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db, request_options
from app.services.audit_log import audit_logger

router = APIRouter(prefix="/trainings", tags=["trainings"])

TRAINING_MANAGERS = ("super_admin", "factory_admin", "hr_staff")


def get_training_or_404(db: Session, training_id: str, user: models.User) -> models.Training:
    db_training = crud.get_training(db, training_id)
    if not db_training:
        raise HTTPException(status_code=404, detail="Training not found")
    auth.ensure_factory_access(user, db_training.factory_id)
    return db_training


def _check_instructor(db: Session, instructor_id: Optional[int]):
    if instructor_id is None:
        return
    instructor = crud.get_user(db, instructor_id)
    if not instructor or not instructor.is_active:
        raise HTTPException(status_code=400, detail="Instructor is invalid or inactive")


def _log(action: str, user: models.User, db_training: models.Training, request: Request, **context):
    audit_logger.log_action(
        action, user,
        {"training_id": db_training.id, "factory_id": db_training.factory_id, "training_title": db_training.title, **context},
        **request_options(request),
    )


@router.post("/", response_model=schemas.Training, status_code=201)
def create_training(
    training: schemas.TrainingCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    auth.ensure_factory_access(current_user, training.factory_id)
    if not crud.get_factory(db, training.factory_id):
        raise HTTPException(status_code=404, detail="Factory not found")
    _check_instructor(db, training.instructor_id)

    db_training = crud.create_training(db, training, current_user.id)
    _log("training_create", current_user, db_training, request, training_type=db_training.training_type)
    return db_training


@router.get("/", response_model=schemas.TrainingPage)
def list_trainings(
    q: Optional[str] = None,
    training_type: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    factory_id: Optional[int] = None,
    department: Optional[str] = None,
    instructor_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    scope = auth.scoped_factory_id(current_user)
    return crud.get_trainings(
        db,
        q=q,
        training_type=training_type,
        category=category,
        status=status,
        factory_id=scope if scope is not None else factory_id,
        department=department,
        instructor_id=instructor_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )


@router.get("/stats")
def training_stats(
    factory_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    scope = auth.scoped_factory_id(current_user)
    return crud.training_statistics(db, factory_id=scope if scope is not None else factory_id)


@router.get("/{training_id}", response_model=schemas.TrainingDetail)
def get_training(
    training_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    return get_training_or_404(db, training_id, current_user)


@router.put("/{training_id}", response_model=schemas.Training)
def update_training(
    training_id: str,
    body: schemas.TrainingUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    db_training = get_training_or_404(db, training_id, current_user)
    _check_instructor(db, body.instructor_id)
    updated = crud.update_training(db, db_training, body)
    _log("training_update", current_user, updated, request, fields=sorted(body.model_dump(exclude_unset=True)))
    return updated


def _advance(db: Session, training_id: str, operation: str, user: models.User, request: Request,
             schedule: Optional[schemas.TrainingSchedule] = None) -> models.Training:
    db_training = get_training_or_404(db, training_id, user)
    previous = db_training.status
    try:
        updated = crud.advance_training(db, db_training, operation, schedule)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _log(f"training_{operation}", user, updated, request, previous_status=previous, new_status=updated.status)
    return updated


@router.post("/{training_id}/schedule", response_model=schemas.Training)
def schedule_training(
    training_id: str,
    body: schemas.TrainingSchedule,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    return _advance(db, training_id, "schedule", current_user, request, body)


@router.post("/{training_id}/start", response_model=schemas.Training)
def start_training(
    training_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    return _advance(db, training_id, "start", current_user, request)


@router.post("/{training_id}/complete", response_model=schemas.Training)
def complete_training(
    training_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    return _advance(db, training_id, "complete", current_user, request)


@router.post("/{training_id}/materials", response_model=schemas.Training, status_code=201)
def add_material(
    training_id: str,
    body: schemas.TrainingMaterialCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    db_training = get_training_or_404(db, training_id, current_user)
    updated = crud.add_training_material(db, db_training, body)
    _log("training_material_add", current_user, updated, request, material_title=body.title)
    return updated


@router.post("/{training_id}/assessments", status_code=201)
def add_assessment(
    training_id: str,
    body: schemas.TrainingAssessmentCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    db_training = get_training_or_404(db, training_id, current_user)
    assessment = crud.add_training_assessment(db, db_training, body)
    _log("training_assessment_add", current_user, db_training, request,
         assessment_id=assessment["id"], assessment_title=body.title)
    return assessment


@router.post("/{training_id}/assessments/{assessment_id}/submissions")
def submit_assessment(
    training_id: str,
    assessment_id: str,
    body: schemas.AssessmentSubmission,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    db_training = get_training_or_404(db, training_id, current_user)
    try:
        result = crud.submit_assessment(db, db_training, assessment_id, body)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _log("training_assessment_submit", current_user, db_training, request,
         assessment_id=assessment_id, attendee_id=body.user_id, percentage=result["percentage"], passed=result["passed"])
    return result


@router.post("/{training_id}/attendance", response_model=schemas.TrainingAttendance, status_code=201)
def record_attendance(
    training_id: str,
    body: schemas.AttendanceCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    db_training = get_training_or_404(db, training_id, current_user)
    attendee = crud.get_user(db, body.user_id)
    if not attendee or not attendee.is_active:
        raise HTTPException(status_code=400, detail="Attendee not found")
    if attendee.factory_id != db_training.factory_id:
        raise HTTPException(status_code=400, detail="Attendee does not belong to this factory")
    try:
        db_attendance = crud.record_attendance(db, db_training, body, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _log("training_attendance_record", current_user, db_training, request,
         attendee_id=attendee.id, attendee_name=attendee.full_name, status=body.status)
    return db_attendance


@router.post("/{training_id}/certificates/{user_id}", response_model=schemas.TrainingAttendance)
def issue_certificate(
    training_id: str,
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*TRAINING_MANAGERS)),
):
    db_training = get_training_or_404(db, training_id, current_user)
    try:
        db_attendance = crud.issue_certificate(db, db_training, user_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _log("certificate_issue", current_user, db_training, request,
         attendee_id=user_id, certificate_number=db_attendance.certificate_number)
    return db_attendance
