"""Evidence document storage and requirement coverage.

Responsibilities
- Save uploaded evidence under EVIDENCE_DIRECTORY/<factory_id>/
- Record a SHA-256 of the content and extract text (PDF, DOCX, HTML, plain text)
- Decide which catalog requirements a factory's evidence covers

Coverage heuristic
- A requirement is covered when a document is explicitly linked to its
  checklist code (REQ<i>), or when the document text contains all of the
  first 6 significant tokens (>=3 chars) of the requirement text.
"""
from __future__ import annotations

import hashlib
import logging
import os
import re
from typing import Iterable, List, Optional
from uuid import uuid4

import docx
from bs4 import BeautifulSoup
from pypdf import PdfReader
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import EVIDENCE_DIRECTORY
from models import EvidenceDocument

logger = logging.getLogger(__name__)


# ---------------------------
# Text extraction
# ---------------------------

def _extract_text_pdf(path: str) -> str:
    reader = PdfReader(path)
    return "\n".join([p.extract_text() or "" for p in reader.pages])


def _extract_text_docx(path: str) -> str:
    d = docx.Document(path)
    return "\n".join([p.text for p in d.paragraphs])


def _extract_text_html(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        return BeautifulSoup(f.read(), "html.parser").get_text(" ")


def extract_text(path: str) -> str:
    """Best-effort text for a stored file; empty string when unreadable."""
    lower = path.lower()
    try:
        if lower.endswith(".pdf"):
            return _extract_text_pdf(path)
        if lower.endswith(".docx"):
            return _extract_text_docx(path)
        if lower.endswith((".html", ".htm")):
            return _extract_text_html(path)
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            return f.read()
    except Exception:
        logger.warning("Text extraction failed for %s", path, exc_info=True)
        return ""


# ---------------------------
# Storage
# ---------------------------

def _safe_name(filename: str) -> str:
    name = os.path.basename(filename or "") or "upload"
    return re.sub(r"[^A-Za-z0-9._-]", "_", name)


def store_document(
    db: Session,
    factory_id: int,
    filename: str,
    content: bytes,
    content_type: Optional[str] = None,
    standard_id: Optional[str] = None,
    requirement_code: Optional[str] = None,
    description: Optional[str] = None,
    uploaded_by_id: Optional[int] = None,
) -> EvidenceDocument:
    """Persist an uploaded evidence file and its metadata.

    Args:
        db: SQLAlchemy session
        factory_id: owning factory; files land in a per-factory folder
        filename: original client filename (sanitized before use)
        content: raw file bytes
        standard_id / requirement_code: optional explicit link to a requirement

    Returns:
        The new EvidenceDocument row.
    """
    folder = os.path.join(EVIDENCE_DIRECTORY, str(factory_id))
    os.makedirs(folder, exist_ok=True)
    name = _safe_name(filename)
    target = os.path.join(folder, f"{uuid4().hex[:8]}_{name}")
    with open(target, "wb") as f:
        f.write(content)

    doc = EvidenceDocument(
        factory_id=factory_id,
        standard_id=standard_id,
        requirement_code=requirement_code,
        filename=name,
        stored_path=target,
        content_type=content_type,
        size_bytes=len(content),
        sha256=hashlib.sha256(content).hexdigest(),
        extracted_text=extract_text(target),
        description=description,
        uploaded_by_id=uploaded_by_id,
    )
    try:
        db.add(doc)
        db.commit()
    except Exception:
        db.rollback()
        os.remove(target)
        logger.error("Evidence record for %s not saved; removed %s", name, target)
        raise
    db.refresh(doc)
    logger.info("Stored evidence %s for factory %s (%d bytes)", doc.id, factory_id, doc.size_bytes)
    return doc


def list_documents(
    db: Session,
    factory_id: Optional[int] = None,
    standard_id: Optional[str] = None,
) -> List[EvidenceDocument]:
    q = db.query(EvidenceDocument)
    if factory_id is not None:
        q = q.filter(EvidenceDocument.factory_id == factory_id)
    if standard_id:
        q = q.filter(EvidenceDocument.standard_id == standard_id)
    return q.order_by(EvidenceDocument.uploaded_at.desc(), EvidenceDocument.id.desc()).all()


def delete_document(db: Session, doc: EvidenceDocument) -> None:
    path = doc.stored_path
    db.delete(doc)
    db.commit()
    if path and os.path.exists(path):
        os.remove(path)
    logger.info("Deleted evidence %s", path)


# ---------------------------
# Coverage
# ---------------------------

def _tokens(line: str) -> List[str]:
    return re.findall(r"[a-zA-Z0-9]+", (line or "").lower())


def _key_terms(requirement_text: str) -> List[str]:
    return [t for t in _tokens(requirement_text) if len(t) >= 3][:6]


def requirement_covered(requirement_text: str, code: str, docs: Iterable[EvidenceDocument], standard_id: str) -> bool:
    terms = _key_terms(requirement_text)
    for d in docs:
        # requirement codes only mean something within their own standard
        if d.standard_id == standard_id and d.requirement_code == code:
            return True
        text = (d.extracted_text or "").lower()
        if terms and all(t in text for t in terms):
            return True
    return False


def coverage(db: Session, factory_id: int, standard_id: str, requirements: List[str]) -> float:
    """Share (0-1) of `requirements` covered by the factory's evidence."""
    if not requirements:
        return 0.0
    docs = (
        db.query(EvidenceDocument)
        .filter(
            EvidenceDocument.factory_id == factory_id,
            or_(EvidenceDocument.standard_id == standard_id, EvidenceDocument.standard_id.is_(None)),
        )
        .all()
    )
    covered = sum(
        1 for i, text in enumerate(requirements)
        if requirement_covered(text, f"REQ{i + 1}", docs, standard_id)
    )
    return covered / len(requirements)
