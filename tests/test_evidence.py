# tests/test_evidence.py

import hashlib
import os

import pytest

from app.services import evidence

SA8000 = [
    "SA1 - Child Labour",
    "SA2 - Forced or Compulsory Labour",
    "SA7 - Working Hours",
]


def test_store_document_writes_file_and_hash(db, factory):
    content = b"Overtime register, March"
    doc = evidence.store_document(db, factory.id, "../../etc/Over time.txt", content, content_type="text/plain")

    assert doc.filename == "Over_time.txt"
    assert doc.sha256 == hashlib.sha256(content).hexdigest()
    assert doc.size_bytes == len(content)
    assert doc.extracted_text == "Overtime register, March"
    assert os.path.dirname(doc.stored_path) == os.path.join(evidence.EVIDENCE_DIRECTORY, str(factory.id))
    with open(doc.stored_path, "rb") as f:
        assert f.read() == content


def test_html_text_is_extracted(db, factory):
    doc = evidence.store_document(db, factory.id, "drill.html", b"<html><body><p>Fire drill log</p></body></html>")
    assert "Fire drill log" in doc.extracted_text


def test_unreadable_pdf_gets_empty_text(db, factory):
    doc = evidence.store_document(db, factory.id, "scan.pdf", b"not really a pdf")
    assert doc.extracted_text == ""


def test_delete_removes_file(db, factory):
    doc = evidence.store_document(db, factory.id, "a.txt", b"x")
    path = doc.stored_path
    evidence.delete_document(db, doc)
    assert not os.path.exists(path)
    assert evidence.list_documents(db, factory.id) == []


def test_coverage_by_explicit_code(db, factory):
    evidence.store_document(db, factory.id, "ids.txt", b"scans", standard_id="sa8000", requirement_code="REQ2")
    assert evidence.coverage(db, factory.id, "sa8000", SA8000) == 1 / 3


def test_coverage_by_key_terms(db, factory):
    evidence.store_document(db, factory.id, "hours.txt", b"SA7 working hours summary for all lines")
    # untagged documents count for any standard
    assert evidence.coverage(db, factory.id, "sa8000", SA8000) == 1 / 3
    assert evidence.coverage(db, factory.id, "sa8000", []) == 0.0


def test_coverage_ignores_other_standards_and_factories(db, factory, other_factory):
    evidence.store_document(db, factory.id, "a.txt", b"x", standard_id="smeta", requirement_code="REQ1")
    evidence.store_document(db, other_factory.id, "b.txt", b"x", standard_id="sa8000", requirement_code="REQ1")
    assert evidence.coverage(db, factory.id, "sa8000", SA8000) == 0.0


def test_list_documents_filters(db, factory, other_factory):
    evidence.store_document(db, factory.id, "a.txt", b"a", standard_id="sa8000")
    evidence.store_document(db, factory.id, "b.txt", b"b", standard_id="smeta")
    evidence.store_document(db, other_factory.id, "c.txt", b"c")
    assert len(evidence.list_documents(db, factory.id)) == 2
    assert [d.filename for d in evidence.list_documents(db, factory.id, "smeta")] == ["b.txt"]
    assert len(evidence.list_documents(db)) == 3


def test_untagged_document_code_does_not_count(db, factory):
    evidence.store_document(db, factory.id, "misc.txt", b"canteen menu", requirement_code="REQ1")
    assert evidence.coverage(db, factory.id, "sa8000", SA8000) == 0.0


def test_failed_commit_removes_stored_file(db, factory, monkeypatch):
    def broken_commit():
        raise RuntimeError("disk full")

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(RuntimeError):
        evidence.store_document(db, factory.id, "wages.txt", b"March payroll")

    folder = os.path.join(evidence.EVIDENCE_DIRECTORY, str(factory.id))
    assert os.listdir(folder) == []
