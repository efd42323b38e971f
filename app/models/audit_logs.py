"""SQLAlchemy model for the immutable audit log.

Entries are written in batches by `app.services.audit_log.AuditLogger` and
never change afterwards. The ORM hooks below refuse updates and deletes so a
stray `db.delete(entry)` fails loudly instead of silently rewriting history.
Ids are strings (`audit_<ms>_<suffix>`) and the acting user/factory are
stored as plain strings, so entries survive the deletion of the rows they
point at.
"""
from __future__ import annotations

from sqlalchemy import Column, String, Text, DateTime, Boolean, JSON, event

# shares the declarative Base with models.py
from database import Base


class AuditLogImmutableError(RuntimeError):
    pass


class AuditLogEntry(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    action = Column(String, nullable=False, index=True)

    user_id = Column(String, index=True, nullable=False, default="anonymous")
    user_role = Column(String, nullable=False, default="unknown")
    user_email = Column(String)
    factory_id = Column(String, index=True)
    organization_id = Column(String, index=True)

    context = Column(JSON, nullable=False, default=dict)
    evidence_hash = Column(String(64), nullable=False)

    session_id = Column(String)
    ip_address = Column(String)
    user_agent = Column(Text)
    source = Column(String, default="web")

    severity = Column(String, index=True)
    category = Column(String, index=True)
    immutable = Column(Boolean, default=True, nullable=False)
    version = Column(String, default="1.0")
    # request/correlation/trace ids; `metadata` is reserved on declarative classes
    request_metadata = Column("metadata", JSON, default=dict)


@event.listens_for(AuditLogEntry, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log entry {target.id} is immutable")


@event.listens_for(AuditLogEntry, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be deleted")
