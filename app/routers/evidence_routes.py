import os
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

import crud, models, schemas, auth
from app.deps import get_db, request_options
from app.services import evidence
from app.services.audit_log import audit_logger

router = APIRouter(prefix="/evidence", tags=["evidence"])

EVIDENCE_WRITERS = ("super_admin", "factory_admin", "auditor", "hr_staff")


def _get_document_or_404(db: Session, document_id: int, user: models.User) -> models.EvidenceDocument:
    doc = crud.get_evidence_document(db, document_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")
    auth.ensure_factory_access(user, doc.factory_id)
    return doc


@router.post("/", response_model=schemas.EvidenceDocument, status_code=201)
async def upload_evidence(
    request: Request,
    factory_id: int = Form(...),
    standard_id: Optional[str] = Form(None),
    requirement_code: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*EVIDENCE_WRITERS)),
):
    auth.ensure_factory_access(current_user, factory_id)
    if not crud.get_factory(db, factory_id):
        raise HTTPException(status_code=404, detail="Factory not found")

    content = await file.read()
    doc = evidence.store_document(
        db,
        factory_id=factory_id,
        filename=file.filename,
        content=content,
        content_type=file.content_type,
        standard_id=standard_id,
        requirement_code=requirement_code,
        description=description,
        uploaded_by_id=current_user.id,
    )
    audit_logger.log_action(
        "document_upload", current_user,
        {
            "document_id": doc.id,
            "factory_id": factory_id,
            "filename": doc.filename,
            "sha256": doc.sha256,
            "standard_id": standard_id,
            "requirement_code": requirement_code,
        },
        **request_options(request),
    )
    return doc


@router.get("/", response_model=List[schemas.EvidenceDocument])
def list_evidence(
    factory_id: Optional[int] = None,
    standard_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    scope = auth.scoped_factory_id(current_user)
    return evidence.list_documents(db, factory_id=scope if scope is not None else factory_id, standard_id=standard_id)


@router.get("/{document_id}/download")
def download_evidence(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_active_user),
):
    doc = _get_document_or_404(db, document_id, current_user)
    if not os.path.isfile(doc.stored_path):
        raise HTTPException(status_code=404, detail="Document file not found")
    return FileResponse(path=doc.stored_path, filename=doc.filename, media_type=doc.content_type)


@router.delete("/{document_id}", status_code=204)
def delete_evidence(
    document_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_roles(*EVIDENCE_WRITERS)),
):
    doc = _get_document_or_404(db, document_id, current_user)
    context = {"document_id": doc.id, "factory_id": doc.factory_id, "filename": doc.filename, "sha256": doc.sha256}
    evidence.delete_document(db, doc)
    audit_logger.log_action("document_delete", current_user, context, **request_options(request))
    return
