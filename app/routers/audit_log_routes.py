from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

import models, auth
from app.deps import get_db, request_options
from app.services.audit_log import audit_logger

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])

LOG_READERS = ("super_admin", "auditor")


def log_filters(
    user_id: Optional[str] = None,
    factory_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    action: Optional[str] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    return {
        "user_id": user_id,
        "factory_id": factory_id,
        "organization_id": organization_id,
        "action": action,
        "category": category,
        "severity": severity,
        "start_date": start_date,
        "end_date": end_date,
    }


@router.get("/")
def get_logs(
    limit: int = 50,
    offset: int = 0,
    filters: Dict[str, Any] = Depends(log_filters),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*LOG_READERS)),
):
    return audit_logger.get_logs(db, filters, limit=limit, offset=offset)


@router.get("/search")
def search_logs(
    q: str,
    filters: Dict[str, Any] = Depends(log_filters),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*LOG_READERS)),
):
    return audit_logger.search_logs(db, q, filters)


@router.get("/stats")
def log_stats(
    filters: Dict[str, Any] = Depends(log_filters),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*LOG_READERS)),
):
    return audit_logger.get_stats(db, filters)


@router.get("/status")
def log_status(current_user: models.User = Depends(auth.require_roles(*LOG_READERS))):
    return audit_logger.get_status()


@router.get("/export")
def export_logs(
    request: Request,
    format: str = "json",
    filters: Dict[str, Any] = Depends(log_filters),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*LOG_READERS)),
):
    try:
        exported = audit_logger.export_logs(db, filters, format)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    audit_logger.log_action(
        "data_export", current_user,
        {"export_type": "audit_logs", "format": format, "filters": filters},
        **request_options(request),
    )
    return Response(
        content=exported["data"],
        media_type=exported["content_type"],
        headers={"Content-Disposition": f'attachment; filename="{exported["filename"]}"'},
    )


@router.get("/{log_id}/verify")
def verify_log(
    log_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*LOG_READERS)),
):
    try:
        return audit_logger.verify_integrity(db, log_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
