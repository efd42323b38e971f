# tests/test_audit_log.py

import csv
import io
import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.core.timeutils import utcnow
from app.models.audit_logs import AuditLogEntry, AuditLogImmutableError
from app.services.audit_log import (
    AuditLogger,
    calculate_severity,
    categorize_action,
    generate_hash,
    sanitize_context,
)


@pytest.fixture
def logger_(session_factory):
    return AuditLogger(session_factory=session_factory, batch_size=3)


def test_severity_and_category_tables():
    assert calculate_severity("user_login") == "critical"
    assert calculate_severity("grievance_submit") == "high"
    assert calculate_severity("document_view") == "medium"
    assert calculate_severity("something_else") == "low"

    assert categorize_action("role_assignment") == "authorization"
    assert categorize_action("grievance_submit") == "case_management"
    assert categorize_action("data_export") == "reporting"
    assert categorize_action("cap_generate") == "other"


def test_sanitize_redacts_nested_sensitive_fields():
    clean = sanitize_context({
        "password": "hunter2",
        "token": "",
        "profile": {"phone": "+855 12 345 678", "name": "Sokha"},
    })
    assert clean["password"] == "[REDACTED]"
    # falsy values are left alone
    assert clean["token"] == ""
    assert clean["profile"] == {"phone": "[REDACTED]", "name": "Sokha"}


def test_sanitize_handles_self_reference_and_odd_values():
    ctx = {"when": utcnow(), "obj": object()}
    ctx["self"] = ctx
    clean = sanitize_context(ctx)
    assert clean["self"] == "[Circular]"
    assert isinstance(clean["when"], str)
    assert isinstance(clean["obj"], str)
    json.dumps(clean)


def test_hash_is_key_order_independent():
    assert generate_hash({"a": 1, "b": [1, 2]}) == generate_hash({"b": [1, 2], "a": 1})
    assert generate_hash({"a": 1}) != generate_hash({"a": 2})
    assert len(generate_hash({})) == 64


def test_entry_defaults_for_anonymous_user(logger_):
    entry = logger_.create_entry("data_query", None, {"factory_id": 7})
    assert entry["id"].startswith("audit_")
    assert entry["user_id"] == "anonymous"
    assert entry["user_role"] == "unknown"
    assert entry["factory_id"] == "7"
    assert entry["source"] == "web"
    assert entry["version"] == "1.0"
    assert entry["immutable"] is True
    assert entry["evidence_hash"] == generate_hash(entry["context"])


def test_batches_are_written_when_full(logger_, db):
    user = {"id": 1, "role": "auditor", "email": "a@example.com"}
    logger_.log_action("document_view", user, {"doc": 1})
    logger_.log_action("document_view", user, {"doc": 2})
    assert logger_.get_status()["pending_logs"] == 2
    assert db.query(AuditLogEntry).count() == 0

    logger_.log_action("document_view", user, {"doc": 3})
    assert logger_.get_status()["pending_logs"] == 0
    assert db.query(AuditLogEntry).count() == 3


def test_reads_flush_pending_entries(logger_, db):
    logger_.log_action("user_login", {"id": 5, "role": "worker"}, {"method": "password"})
    result = logger_.get_logs(db)
    assert result["total"] == 1
    assert result["logs"][0]["severity"] == "critical"
    assert result["logs"][0]["category"] == "authentication"
    assert result["has_more"] is False


def test_get_logs_filters_and_pagination(logger_, db):
    for i in range(5):
        logger_.log_action("case_update", {"id": i % 2, "role": "grievance_committee"}, {"n": i})
    logger_.log_action("user_login", {"id": 9, "role": "worker"}, {})

    page = logger_.get_logs(db, {"action": "case_update"}, limit=2)
    assert page["total"] == 5
    assert len(page["logs"]) == 2
    assert page["has_more"] is True

    by_user = logger_.get_logs(db, {"user_id": "1"})
    assert by_user["total"] == 2


def test_search_matches_context_text(logger_, db):
    logger_.log_action("case_update", {"id": 1, "role": "hr_staff"}, {"note": "Fire exit blocked"})
    logger_.log_action("case_update", {"id": 1, "role": "hr_staff"}, {"note": "Payroll delay"})
    found = logger_.search_logs(db, "FIRE EXIT")
    assert found["total"] == 1
    assert found["search_term"] == "FIRE EXIT"


def test_export_csv_quotes_every_field(logger_, db):
    logger_.log_action("audit_create", {"id": 2, "role": "auditor", "factory_id": 3}, {})
    exported = logger_.export_logs(db, fmt="csv")
    assert exported["filename"].endswith(".csv")
    assert exported["content_type"] == "text/csv"
    lines = exported["data"].strip().split("\n")
    assert lines[0].startswith('"ID","Timestamp","Action"')
    row = next(csv.reader(io.StringIO(lines[1])))
    assert row[2] == "audit_create"
    assert row[5] == "3"


def test_export_json_and_unknown_format(logger_, db):
    logger_.log_action("audit_create", {"id": 2, "role": "auditor"}, {})
    payload = json.loads(logger_.export_logs(db, fmt="json")["data"])
    assert payload["total_records"] == 1
    with pytest.raises(ValueError):
        logger_.export_logs(db, fmt="pdf")


def test_stats_counts(logger_, db):
    logger_.log_action("user_login", {"id": 1, "role": "worker"}, {})
    logger_.log_action("grievance_submit", {"id": 1, "role": "worker"}, {})
    logger_.log_action("grievance_submit", {"id": 2, "role": "worker"}, {})
    stats = logger_.get_stats(db)
    assert stats["total_actions"] == 3
    assert stats["actions_by_category"] == {"authentication": 1, "case_management": 2}
    assert stats["actions_by_user"] == {"1": 2, "2": 1}
    assert len(stats["recent_activity"]) == 3


def test_verify_integrity(logger_, db):
    entry = logger_.log_action("data_export", {"id": 1, "role": "super_admin"}, {"password": "x", "rows": 10})
    result = logger_.verify_integrity(db, entry["id"])
    assert result["integrity"] is True
    assert result["original_hash"] == result["current_hash"]

    with pytest.raises(LookupError):
        logger_.verify_integrity(db, "audit_missing")


def test_persisted_entries_are_immutable(logger_, db):
    entry = logger_.log_action("user_login", {"id": 1, "role": "worker"}, {})
    logger_.flush()
    row = db.query(AuditLogEntry).filter(AuditLogEntry.id == entry["id"]).one()

    row.action = "user_logout"
    with pytest.raises(AuditLogImmutableError):
        db.commit()
    db.rollback()

    db.delete(row)
    with pytest.raises(AuditLogImmutableError):
        db.commit()
    db.rollback()
    assert db.query(AuditLogEntry).count() == 1


def test_active_days_counts_distinct_days(logger_, db):
    logger_.log_action("document_upload", {"id": 1, "role": "auditor", "factory_id": 4}, {})
    logger_.log_action("document_upload", {"id": 1, "role": "auditor", "factory_id": 4}, {})
    logger_.log_action("document_upload", {"id": 1, "role": "auditor", "factory_id": 5}, {})
    assert logger_.active_days(db, 4, utcnow() - timedelta(days=30)) == 1
    assert logger_.active_days(db, 6, utcnow() - timedelta(days=30)) == 0


PHNOM_PENH = timezone(timedelta(hours=7))


def test_date_bounds_accept_offset_timestamps(logger_, db):
    logger_.log_action("audit_create", {"id": 1, "role": "auditor"}, {})
    local_now = datetime.now(PHNOM_PENH)

    assert logger_.get_logs(db, {"start_date": local_now - timedelta(minutes=1)})["total"] == 1
    assert logger_.get_logs(db, {"start_date": local_now + timedelta(minutes=1)})["total"] == 0
    assert logger_.get_logs(db, {"end_date": local_now + timedelta(minutes=1)})["total"] == 1
    assert logger_.get_logs(db, {"end_date": local_now - timedelta(minutes=1)})["total"] == 0


class _BrokenSession:
    def add_all(self, rows):
        pass

    def commit(self):
        raise RuntimeError("database is locked")

    def rollback(self):
        pass

    def close(self):
        pass


def test_failed_batch_write_keeps_entries_pending(session_factory, db):
    audit = AuditLogger(session_factory=_BrokenSession, batch_size=2)
    audit.log_action("document_view", {"id": 1, "role": "auditor"}, {"doc": 1})
    entry = audit.log_action("document_view", {"id": 1, "role": "auditor"}, {"doc": 2})

    assert entry["action"] == "document_view"
    assert [e["context"]["doc"] for e in audit.pending] == [1, 2]
    with pytest.raises(RuntimeError):
        audit.flush()
    assert audit.get_status()["pending_logs"] == 2

    audit.session_factory = session_factory
    assert audit.flush() == 2
    assert db.query(AuditLogEntry).count() == 2


class _GatedSession:
    """Real session whose commit waits until the test lets it through."""

    def __init__(self, session, entered, release):
        self._session = session
        self._entered = entered
        self._release = release

    def __getattr__(self, name):
        return getattr(self._session, name)

    def commit(self):
        self._entered.set()
        self._release.wait(5)
        self._session.commit()


def test_flush_waits_for_a_batch_being_written(session_factory, db):
    entered, release, second_done = threading.Event(), threading.Event(), threading.Event()
    audit = AuditLogger(session_factory=lambda: _GatedSession(session_factory(), entered, release), batch_size=10)
    audit.log_action("document_view", {"id": 1, "role": "auditor"}, {})

    first = threading.Thread(target=audit.flush)
    first.start()
    assert entered.wait(5)

    def second_flush():
        audit.flush()
        second_done.set()

    second = threading.Thread(target=second_flush)
    second.start()
    assert not second_done.wait(0.2)

    release.set()
    first.join(5)
    second.join(5)
    assert second_done.is_set()
    assert db.query(AuditLogEntry).count() == 1
