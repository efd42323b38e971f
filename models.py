# models.py

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Boolean, Float, JSON
from sqlalchemy.orm import relationship

from database import Base
from app.core.timeutils import utcnow


class Factory(Base):
    __tablename__ = "factories"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    code = Column(String, unique=True, index=True, nullable=False)
    address = Column(String)
    country = Column(String, index=True)
    industry = Column(String, index=True)
    size = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    users = relationship("User", back_populates="factory")
    audits = relationship("Audit", back_populates="factory", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    hashed_password = Column(String, nullable=False)
    role = Column(String, index=True, nullable=False, default="worker")
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=True)
    organization_id = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    factory = relationship("Factory", back_populates="users")


class Audit(Base):
    __tablename__ = "audits"
    id = Column(Integer, primary_key=True, index=True)
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=False, index=True)
    standard_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    audit_type = Column(String, default="internal")
    scope = Column(Text)
    planned_start = Column(DateTime(timezone=True))
    planned_end = Column(DateTime(timezone=True))
    actual_start = Column(DateTime(timezone=True))
    actual_end = Column(DateTime(timezone=True))
    lead_auditor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String, index=True, default="planned")
    score = Column(Float, nullable=True)
    summary = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    factory = relationship("Factory", back_populates="audits")
    findings = relationship("AuditFinding", back_populates="audit", cascade="all, delete-orphan",
                            order_by="AuditFinding.id")


class AuditFinding(Base):
    __tablename__ = "audit_findings"
    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    finding_type = Column(String, default="other")
    severity = Column(String, default="medium")
    requirement_code = Column(String, nullable=True)
    evidence = Column(Text, nullable=True)
    non_compliance = Column(Boolean, default=False)
    root_cause = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    audit = relationship("Audit", back_populates="findings")


class CorrectiveActionPlan(Base):
    __tablename__ = "caps"
    id = Column(String, primary_key=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=True, index=True)
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=True, index=True)
    standard_id = Column(String, index=True)
    priority = Column(String, default="medium")
    status = Column(String, default="pending")
    title = Column(String)
    description = Column(Text)
    assignee = Column(String, default="unassigned")
    findings = Column(JSON, default=list)
    non_compliances = Column(JSON, default=list)
    action_plan = Column(JSON)
    verification_plan = Column(JSON)
    stakeholders = Column(JSON)
    risk_assessment = Column(JSON)
    cost_estimate = Column(JSON)
    timeline = Column(JSON)
    version = Column(Integer, default=1)
    is_active = Column(Boolean, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Grievance(Base):
    __tablename__ = "grievances"
    id = Column(String, primary_key=True)
    case_number = Column(String, unique=True, index=True)
    worker_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    worker_name = Column(String)
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=True, index=True)
    organization_id = Column(String, nullable=True)
    category = Column(String, index=True)
    subcategory = Column(String)
    description = Column(Text, nullable=False)
    priority = Column(String, default="medium")
    status = Column(String, index=True, default="intake")
    confidential = Column(Boolean, default=False)
    risk_level = Column(String, default="low")
    sla_days = Column(Integer)
    due_date = Column(DateTime(timezone=True))
    source = Column(String, default="worker_portal")
    timeline = Column(JSON, default=dict)
    triage_result = Column(JSON, nullable=True)
    investigator_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    assignment = Column(JSON, nullable=True)
    notes = Column(JSON, default=list)
    escalation_history = Column(JSON, default=list)
    sla_breach = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Requirement(Base):
    __tablename__ = "requirements"
    id = Column(Integer, primary_key=True, index=True)
    standard_id = Column(String, index=True, nullable=False)
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=True, index=True)
    requirement_code = Column(String, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default="active")
    compliance_score = Column(Float, default=0)
    risk_level = Column(String, default="medium")
    evidence_count = Column(Integer, default=0)
    last_audit_date = Column(DateTime(timezone=True), nullable=True)
    next_audit_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class AuditChecklist(Base):
    __tablename__ = "audit_checklists"
    id = Column(String, primary_key=True)
    standard_id = Column(String, index=True)
    standard_name = Column(String)
    standard_version = Column(String)
    audit_type = Column(String, default="full")
    focus_areas = Column(JSON, default=list)
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=True, index=True)
    items = Column(JSON, default=list)
    summary = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True)
    generated_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    generated_at = Column(DateTime(timezone=True), default=utcnow)


class EvidenceDocument(Base):
    __tablename__ = "evidence_documents"
    id = Column(Integer, primary_key=True, index=True)
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=False, index=True)
    standard_id = Column(String, index=True, nullable=True)
    requirement_code = Column(String, nullable=True)
    filename = Column(String, nullable=False)
    stored_path = Column(String, nullable=False)
    content_type = Column(String, nullable=True)
    size_bytes = Column(Integer, default=0)
    sha256 = Column(String, index=True)
    extracted_text = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    uploaded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow)


class Permit(Base):
    __tablename__ = "permits"
    id = Column(String, primary_key=True)
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=False, index=True)
    permit_type = Column(String, index=True, nullable=False)
    number = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    issued_by = Column(String, nullable=False)
    issued_date = Column(DateTime(timezone=True), nullable=False)
    expiry_date = Column(DateTime(timezone=True), nullable=False, index=True)
    renewal_required = Column(Boolean, default=True)
    renewal_period = Column(Integer, nullable=True)
    requirements = Column(JSON, default=list)
    documents = Column(JSON, default=list)
    contact_info = Column(String, nullable=True)
    details = Column(JSON, default=dict)
    status = Column(String, index=True, default="valid")
    renewals = Column(JSON, default=list)
    revocation = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Training(Base):
    __tablename__ = "trainings"
    id = Column(String, primary_key=True)
    factory_id = Column(Integer, ForeignKey("factories.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    training_type = Column(String, index=True, nullable=False)
    category = Column(String, index=True, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    department = Column(String, nullable=True)
    target_audience = Column(JSON, default=list)
    objectives = Column(JSON, default=list)
    prerequisites = Column(JSON, default=list)
    assessment_required = Column(Boolean, default=False)
    passing_score = Column(Integer, default=70)
    validity_period = Column(Integer, nullable=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    location = Column(String, nullable=True)
    max_participants = Column(Integer, nullable=True)
    status = Column(String, index=True, default="draft")
    actual_start = Column(DateTime(timezone=True), nullable=True)
    actual_end = Column(DateTime(timezone=True), nullable=True)
    materials = Column(JSON, default=list)
    assessments = Column(JSON, default=list)
    details = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    attendances = relationship("TrainingAttendance", back_populates="training", cascade="all, delete-orphan",
                               order_by="TrainingAttendance.id")


class TrainingAttendance(Base):
    __tablename__ = "training_attendances"
    id = Column(Integer, primary_key=True, index=True)
    training_id = Column(String, ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, default="present")
    attended_at = Column(DateTime(timezone=True), default=utcnow)
    recorded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    submissions = Column(JSON, default=list)
    best_score = Column(Integer, nullable=True)
    certificate_number = Column(String, unique=True, nullable=True)
    certificate_valid_until = Column(DateTime(timezone=True), nullable=True)
    certificate_issued_at = Column(DateTime(timezone=True), nullable=True)
    training = relationship("Training", back_populates="attendances")
