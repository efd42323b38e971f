"""Immutable, hash-stamped audit logging.

Every security- or compliance-relevant action in the API goes through
`audit_logger.log_action(...)`. Entries are built immediately (severity,
category, sanitized context, SHA-256 evidence hash) but written in batches:
they sit in an in-memory pending list until `batch_size` is reached, a read
needs them, or the application shuts down.

Notes
-----
- The evidence hash covers the *sanitized* context, i.e. exactly what is
  stored, so `verify_integrity` can recompute it from the row alone.
- Rows are never updated or deleted (see `app.models.audit_logs`).
- Reads flush first, so a query always sees every action logged before it.
"""
from __future__ import annotations

import csv
import hashlib
import io
import json
import logging
import threading
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import AUDIT_LOG_BATCH_SIZE, AUDIT_LOG_EXPORT_LIMIT
from app.core.ids import prefixed_id
from app.core.timeutils import as_utc, utcnow
from app.models.audit_logs import AuditLogEntry
from database import SessionLocal

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
CIRCULAR = "[Circular]"

SENSITIVE_FIELDS = (
    "password", "token", "secret", "key", "credential",
    "ssn", "passport", "idNumber", "phone", "address",
)

CRITICAL_ACTIONS = {
    "user_login", "user_logout", "password_change", "permission_grant",
    "permission_revoke", "data_export", "system_config_change",
}
HIGH_SEVERITY_ACTIONS = {
    "document_upload", "document_delete", "case_create", "case_update",
    "audit_create", "audit_update", "grievance_submit",
}
MEDIUM_SEVERITY_ACTIONS = {"document_view", "case_view", "report_generate", "data_query"}

ACTION_CATEGORIES = {
    "authentication": ["user_login", "user_logout", "password_change", "mfa_setup"],
    "authorization": ["permission_grant", "permission_revoke", "role_assignment"],
    "data_access": ["document_view", "document_upload", "document_delete", "data_query"],
    "case_management": ["case_create", "case_update", "case_delete", "grievance_submit"],
    "audit_management": ["audit_create", "audit_update", "audit_delete"],
    "system_admin": ["system_config_change", "user_management", "backup_create"],
    "reporting": ["report_generate", "data_export", "analytics_access"],
}

CSV_HEADERS = [
    "ID", "Timestamp", "Action", "User ID", "User Role", "Factory ID",
    "Organization ID", "Severity", "Category", "Session ID", "Source",
]


# ---------------------------
# Classification
# ---------------------------

def calculate_severity(action: str) -> str:
    if action in CRITICAL_ACTIONS:
        return "critical"
    if action in HIGH_SEVERITY_ACTIONS:
        return "high"
    if action in MEDIUM_SEVERITY_ACTIONS:
        return "medium"
    return "low"


def categorize_action(action: str) -> str:
    for category, actions in ACTION_CATEGORIES.items():
        if action in actions:
            return category
    return "other"


# ---------------------------
# Sanitizing + hashing
# ---------------------------

def _jsonable(value: Any, seen: set) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        if id(value) in seen:
            return CIRCULAR
        seen = seen | {id(value)}
        if isinstance(value, dict):
            out = {}
            for k, v in value.items():
                key = str(k)
                if key in SENSITIVE_FIELDS and v:
                    out[key] = REDACTED
                else:
                    out[key] = _jsonable(v, seen)
            return out
        return [_jsonable(item, seen) for item in value]
    return str(value)


def sanitize_context(context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Redact sensitive keys (recursively) and make the context JSON-safe."""
    if not context:
        return {}
    return _jsonable(dict(context), set())


def generate_hash(data: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of `data`."""
    text = json.dumps(_jsonable(data, set()), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def generate_log_id() -> str:
    return prefixed_id("audit")


def _user_fields(user: Any) -> Dict[str, Any]:
    if user is None:
        return {"id": None, "role": None, "email": None, "factory_id": None, "organization_id": None}
    if isinstance(user, dict):
        get = user.get
    else:
        def get(name):
            return getattr(user, name, None)
    return {
        "id": get("id"),
        "role": get("role"),
        "email": get("email"),
        "factory_id": get("factory_id"),
        "organization_id": get("organization_id"),
    }


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def entry_to_dict(row: AuditLogEntry) -> Dict[str, Any]:
    ts = as_utc(row.timestamp)
    return {
        "id": row.id,
        "timestamp": ts.isoformat() if ts else None,
        "action": row.action,
        "user_id": row.user_id,
        "user_role": row.user_role,
        "user_email": row.user_email,
        "factory_id": row.factory_id,
        "organization_id": row.organization_id,
        "context": row.context or {},
        "evidence_hash": row.evidence_hash,
        "session_id": row.session_id,
        "ip_address": row.ip_address,
        "user_agent": row.user_agent,
        "source": row.source,
        "severity": row.severity,
        "category": row.category,
        "immutable": row.immutable,
        "version": row.version,
        "metadata": row.request_metadata or {},
    }


# ---------------------------
# Logger
# ---------------------------

class AuditLogger:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        batch_size: int = AUDIT_LOG_BATCH_SIZE,
    ):
        self.session_factory = session_factory
        self.batch_size = max(1, batch_size)
        self.is_immutable = True
        self.hash_algorithm = "SHA-256"
        self.pending: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        # held from taking a batch until its commit finishes
        self._write_lock = threading.Lock()

    # -- writing ------------------------------------------------------------

    def create_entry(
        self,
        action: str,
        user: Any = None,
        context: Optional[Dict[str, Any]] = None,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        source: str = "web",
        session_id: Optional[str] = None,
        request_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        timestamp = utcnow()
        clean = sanitize_context(context)
        who = _user_fields(user)
        return {
            "id": generate_log_id(),
            "timestamp": timestamp,
            "action": action,
            "user_id": _str_or_none(who["id"]) or "anonymous",
            "user_role": who["role"] or "unknown",
            "user_email": who["email"],
            "factory_id": _str_or_none(who["factory_id"] or clean.get("factory_id")),
            "organization_id": _str_or_none(who["organization_id"] or clean.get("organization_id")),
            "context": clean,
            "evidence_hash": generate_hash(clean),
            "session_id": session_id or f"session_{int(timestamp.timestamp() * 1000)}",
            "ip_address": ip_address,
            "user_agent": user_agent,
            "source": source or "web",
            "severity": calculate_severity(action),
            "category": categorize_action(action),
            "immutable": True,
            "version": "1.0",
            "request_metadata": {
                "request_id": request_id,
                "correlation_id": correlation_id,
                "trace_id": trace_id,
            },
        }

    def log_action(self, action: str, user: Any = None, context: Optional[Dict[str, Any]] = None, **options) -> Dict[str, Any]:
        entry = self.create_entry(action, user, context, **options)
        with self._lock:
            self.pending.append(entry)
            full = len(self.pending) >= self.batch_size
        if full:
            try:
                self.process_batch()
            except Exception:
                # entries stay pending and go out with the next flush
                logger.exception("Audit log batch write deferred after %s", action)
        return entry

    def process_batch(self) -> int:
        with self._write_lock:
            with self._lock:
                batch, self.pending = self.pending, []
            if not batch:
                return 0

            db = self.session_factory()
            try:
                db.add_all([AuditLogEntry(**entry) for entry in batch])
                db.commit()
            except Exception:
                db.rollback()
                with self._lock:
                    self.pending = batch + self.pending
                logger.exception("Failed to write audit log batch of %d entries", len(batch))
                raise
            finally:
                db.close()

        logger.info("Processed %d audit logs", len(batch))
        return len(batch)

    def flush(self) -> int:
        return self.process_batch()

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            pending = len(self.pending)
        return {
            "is_immutable": self.is_immutable,
            "hash_algorithm": self.hash_algorithm,
            "pending_logs": pending,
            "batch_size": self.batch_size,
        }

    # -- reading ------------------------------------------------------------

    def _filtered_query(self, db: Session, filters: Optional[Dict[str, Any]]):
        filters = filters or {}
        q = db.query(AuditLogEntry)
        for field in ("user_id", "factory_id", "organization_id", "action", "category", "severity"):
            value = filters.get(field)
            if value is not None and value != "":
                q = q.filter(getattr(AuditLogEntry, field) == str(value))
        if filters.get("start_date"):
            q = q.filter(AuditLogEntry.timestamp >= as_utc(filters["start_date"]))
        if filters.get("end_date"):
            q = q.filter(AuditLogEntry.timestamp <= as_utc(filters["end_date"]))
        return q

    def get_logs(self, db: Session, filters: Optional[Dict[str, Any]] = None, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        self.flush()
        q = self._filtered_query(db, filters)
        total = q.count()
        rows = (
            q.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
            .offset(max(0, offset))
            .limit(max(1, limit))
            .all()
        )
        logs = [entry_to_dict(r) for r in rows]
        return {"logs": logs, "total": total, "has_more": len(logs) == limit}

    def search_logs(self, db: Session, term: str, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        result = self.get_logs(db, filters, limit=AUDIT_LOG_EXPORT_LIMIT)
        needle = (term or "").lower()
        matches = []
        for log in result["logs"]:
            haystack = " ".join([
                log["action"] or "",
                log["user_id"] or "",
                log["user_role"] or "",
                log["category"] or "",
                log["severity"] or "",
                json.dumps(log["context"], sort_keys=True),
            ]).lower()
            if needle in haystack:
                matches.append(log)
        return {"logs": matches, "total": len(matches), "search_term": term}

    def export_logs(self, db: Session, filters: Optional[Dict[str, Any]] = None, fmt: str = "json") -> Dict[str, str]:
        fmt = (fmt or "").lower()
        if fmt not in ("json", "csv"):
            raise ValueError(f"Unsupported export format: {fmt}")

        logs = self.get_logs(db, filters, limit=AUDIT_LOG_EXPORT_LIMIT)["logs"]
        day = utcnow().date().isoformat()
        if fmt == "json":
            payload = {
                "export_date": utcnow().isoformat(),
                "total_records": len(logs),
                "logs": logs,
            }
            return {
                "data": json.dumps(payload, indent=2, ensure_ascii=False),
                "filename": f"audit_logs_{day}.json",
                "content_type": "application/json",
            }

        buf = io.StringIO()
        writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for log in logs:
            writer.writerow([
                log["id"], log["timestamp"], log["action"], log["user_id"], log["user_role"],
                log["factory_id"] or "", log["organization_id"] or "",
                log["severity"], log["category"], log["session_id"], log["source"],
            ])
        return {
            "data": buf.getvalue(),
            "filename": f"audit_logs_{day}.csv",
            "content_type": "text/csv",
        }

    def get_stats(self, db: Session, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        logs = self.get_logs(db, filters, limit=AUDIT_LOG_EXPORT_LIMIT)["logs"]
        by_hour: Counter = Counter()
        for log in logs:
            by_hour[datetime.fromisoformat(log["timestamp"]).hour] += 1
        return {
            "total_actions": len(logs),
            "actions_by_category": dict(Counter(log["category"] for log in logs)),
            "actions_by_severity": dict(Counter(log["severity"] for log in logs)),
            "actions_by_user": dict(Counter(log["user_id"] for log in logs)),
            "actions_by_hour": dict(by_hour),
            "recent_activity": [
                {
                    "timestamp": log["timestamp"],
                    "action": log["action"],
                    "user_id": log["user_id"],
                    "severity": log["severity"],
                }
                for log in logs[:10]
            ],
        }

    def verify_integrity(self, db: Session, log_id: str) -> Dict[str, Any]:
        self.flush()
        row = db.query(AuditLogEntry).filter(AuditLogEntry.id == log_id).first()
        if row is None:
            raise LookupError("Log entry not found")
        current = generate_hash(row.context or {})
        ts = as_utc(row.timestamp)
        return {
            "log_id": row.id,
            "original_hash": row.evidence_hash,
            "current_hash": current,
            "integrity": current == row.evidence_hash,
            "timestamp": ts.isoformat() if ts else None,
        }

    def active_days(self, db: Session, factory_id: Any, since: datetime) -> int:
        """Number of distinct calendar days with at least one entry for a factory."""
        self.flush()
        rows = (
            db.query(AuditLogEntry.timestamp)
            .filter(AuditLogEntry.factory_id == str(factory_id), AuditLogEntry.timestamp >= as_utc(since))
            .all()
        )
        return len({as_utc(ts).date() for (ts,) in rows})


audit_logger = AuditLogger()
