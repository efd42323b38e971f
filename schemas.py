# compliance-backend/schemas.py

from pydantic import BaseModel, Field, EmailStr
from typing import List, Dict, Optional, Literal, Any
from datetime import datetime

Role = Literal["super_admin", "factory_admin", "hr_staff", "auditor", "grievance_committee", "worker"]
Severity = Literal["critical", "high", "medium", "low"]

# ---------------------------
# Users / auth
# ---------------------------

class UserBase(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None
class UserCreate(UserBase):
    password: str = Field(min_length=8)
    role: Role = "worker"
    factory_id: Optional[int] = None
    organization_id: Optional[str] = None
class User(UserBase):
    id: int
    role: str
    factory_id: Optional[int] = None
    organization_id: Optional[str] = None
    is_active: bool
    class Config:
        from_attributes = True

class RoleUpdate(BaseModel):
    role: Role

class Token(BaseModel):
    access_token: str
    token_type: str
class TokenData(BaseModel):
    email: Optional[str] = None

# ---------------------------
# Factories
# ---------------------------

class FactoryBase(BaseModel):
    name: str
    address: Optional[str] = None
    country: Optional[str] = None
    industry: Optional[str] = None
    size: int = 0
class FactoryCreate(FactoryBase):
    code: str
class FactoryUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    industry: Optional[str] = None
    size: Optional[int] = None
    is_active: Optional[bool] = None
class Factory(FactoryBase):
    id: int
    code: str
    is_active: bool
    created_at: datetime
    class Config:
        from_attributes = True

# ---------------------------
# Audits
# ---------------------------

class FindingBase(BaseModel):
    title: str
    description: str
    finding_type: Literal["safety", "environmental", "quality", "hr", "child_labor", "forced_labor", "other"] = "other"
    severity: Severity = "medium"
    requirement_code: Optional[str] = None
    evidence: Optional[str] = None
    non_compliance: bool = False
    root_cause: Optional[str] = None
    recommendation: Optional[str] = None
class FindingCreate(FindingBase):
    pass
class Finding(FindingBase):
    id: int
    audit_id: int
    created_at: datetime
    class Config:
        from_attributes = True

class AuditBase(BaseModel):
    title: str
    standard_id: str
    audit_type: Literal["internal", "external", "certification", "follow_up"] = "internal"
    scope: Optional[str] = None
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    lead_auditor_id: Optional[int] = None
class AuditCreate(AuditBase):
    factory_id: int
class AuditUpdate(BaseModel):
    title: Optional[str] = None
    scope: Optional[str] = None
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    lead_auditor_id: Optional[int] = None
    recommendations: Optional[str] = None
class AuditStatusUpdate(BaseModel):
    status: Literal["planned", "in_progress", "completed", "cancelled"]
    score: Optional[float] = Field(default=None, ge=0, le=100)
    summary: Optional[str] = None
class Audit(AuditBase):
    id: int
    factory_id: int
    status: str
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    score: Optional[float] = None
    summary: Optional[str] = None
    recommendations: Optional[str] = None
    created_by_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    findings: List[Finding] = []
    class Config:
        from_attributes = True

# ---------------------------
# CAPs
# ---------------------------

class CAPStatusUpdate(BaseModel):
    status: Literal["pending", "approved", "in_progress", "completed", "verified", "closed"]
class ActionStatusUpdate(BaseModel):
    status: Literal["pending", "in_progress", "completed", "verified"]
    responsible: Optional[str] = None
class CAP(BaseModel):
    id: str
    audit_id: Optional[int] = None
    factory_id: Optional[int] = None
    standard_id: Optional[str] = None
    priority: str
    status: str
    title: str
    description: str
    assignee: str
    findings: List[Dict[str, Any]] = []
    non_compliances: List[Dict[str, Any]] = []
    action_plan: Dict[str, Any]
    verification_plan: Dict[str, Any]
    stakeholders: List[str]
    risk_assessment: Dict[str, Any]
    cost_estimate: Dict[str, Any]
    timeline: Dict[str, Any]
    version: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

# ---------------------------
# Grievances
# ---------------------------

GrievanceCategory = Literal[
    "labor_rights", "health_safety", "harassment_discrimination",
    "working_conditions", "management_issues", "other",
]
GrievanceStatus = Literal[
    "intake", "triage", "assigned", "investigation",
    "resolution", "verification", "closed", "escalated",
]

class GrievanceCreate(BaseModel):
    category: GrievanceCategory
    subcategory: Optional[str] = None
    description: str = Field(min_length=1)
    priority: Severity = "medium"
    confidential: bool = False
    worker_name: Optional[str] = None
    factory_id: Optional[int] = None
    source: str = "worker_portal"
class GrievanceAssign(BaseModel):
    investigator_id: int
    notes: Optional[str] = None
class GrievanceStatusUpdate(BaseModel):
    status: GrievanceStatus
    notes: Optional[str] = None
class Grievance(BaseModel):
    id: str
    case_number: str
    worker_id: Optional[int] = None
    worker_name: Optional[str] = None
    factory_id: Optional[int] = None
    category: str
    subcategory: Optional[str] = None
    description: str
    priority: str
    status: str
    confidential: bool
    risk_level: str
    sla_days: int
    due_date: datetime
    source: str
    timeline: Dict[str, Any] = {}
    triage_result: Optional[Dict[str, Any]] = None
    investigator_id: Optional[int] = None
    assignment: Optional[Dict[str, Any]] = None
    notes: List[Dict[str, Any]] = []
    escalation_history: List[Dict[str, Any]] = []
    sla_breach: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

# ---------------------------
# Standards / requirements / checklists
# ---------------------------

class RequirementBase(BaseModel):
    requirement_code: Optional[str] = None
    title: str
    description: Optional[str] = None
class RequirementCreate(RequirementBase):
    standard_id: str
    factory_id: Optional[int] = None
class RequirementUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[Literal["active", "compliant", "non_compliant", "pending"]] = None
    compliance_score: Optional[float] = None
    risk_level: Optional[str] = None
    evidence_count: Optional[int] = None
    last_audit_date: Optional[datetime] = None
    next_audit_date: Optional[datetime] = None
class Requirement(RequirementBase):
    id: int
    standard_id: str
    factory_id: Optional[int] = None
    status: str
    compliance_score: float
    risk_level: str
    evidence_count: int
    last_audit_date: Optional[datetime] = None
    next_audit_date: Optional[datetime] = None
    created_at: datetime
    class Config:
        from_attributes = True

class ChecklistCreate(BaseModel):
    standard_id: str
    factory_id: Optional[int] = None
    audit_type: str = "full"
    focus_areas: List[str] = []
class ChecklistItemUpdate(BaseModel):
    status: Literal["pending", "in_progress", "completed", "not_applicable"]
    notes: Optional[str] = None
class Checklist(BaseModel):
    id: str
    standard_id: str
    standard_name: str
    standard_version: str
    audit_type: str
    focus_areas: List[str] = []
    factory_id: Optional[int] = None
    items: List[Dict[str, Any]]
    summary: Dict[str, int]
    generated_by_id: Optional[int] = None
    generated_at: datetime
    class Config:
        from_attributes = True

# ---------------------------
# Evidence
# ---------------------------

class EvidenceDocument(BaseModel):
    id: int
    factory_id: int
    standard_id: Optional[str] = None
    requirement_code: Optional[str] = None
    filename: str
    content_type: Optional[str] = None
    size_bytes: int
    sha256: str
    description: Optional[str] = None
    uploaded_by_id: Optional[int] = None
    uploaded_at: datetime
    class Config:
        from_attributes = True

# ---------------------------
# Permits / certificates
# ---------------------------

PermitType = Literal[
    "business_license", "fire_safety", "environmental", "building",
    "occupational_health", "export_license", "certificate", "other",
]
PermitStatus = Literal["valid", "expired", "suspended", "revoked"]

class PermitBase(BaseModel):
    permit_type: PermitType
    number: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    issued_by: str = Field(min_length=1)
    issued_date: datetime
    expiry_date: datetime
    renewal_required: bool = True
    renewal_period: Optional[int] = Field(default=None, ge=1)
    requirements: List[str] = []
    documents: List[str] = []
    contact_info: Optional[str] = None
    details: Dict[str, Any] = {}
class PermitCreate(PermitBase):
    factory_id: int
class PermitUpdate(BaseModel):
    permit_type: Optional[PermitType] = None
    number: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    issued_by: Optional[str] = Field(default=None, min_length=1)
    issued_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    renewal_required: Optional[bool] = None
    renewal_period: Optional[int] = Field(default=None, ge=1)
    requirements: Optional[List[str]] = None
    documents: Optional[List[str]] = None
    contact_info: Optional[str] = None
    status: Optional[Literal["valid", "expired", "suspended"]] = None
    details: Optional[Dict[str, Any]] = None
class PermitRenew(BaseModel):
    new_expiry_date: datetime
    notes: Optional[str] = None
class PermitRevoke(BaseModel):
    reason: str = Field(min_length=1)
class Permit(PermitBase):
    id: str
    factory_id: int
    status: str
    renewals: List[Dict[str, Any]] = []
    revocation: Optional[Dict[str, Any]] = None
    created_by_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True
class PermitDetail(Permit):
    expiry: Dict[str, Any]
    reminders: List[Dict[str, Any]] = []
class PermitPage(BaseModel):
    items: List[Permit]
    total: int
    page: int
    limit: int
    total_pages: int

# ---------------------------
# Trainings
# ---------------------------

TrainingType = Literal["initial", "refresher", "specialized"]

class TrainingBase(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    training_type: TrainingType
    category: str = Field(min_length=1)
    duration_minutes: int = Field(ge=1)
    department: Optional[str] = None
    target_audience: List[str] = Field(min_length=1)
    objectives: List[str] = Field(min_length=1)
    prerequisites: List[str] = []
    assessment_required: bool = False
    passing_score: int = Field(default=70, ge=0, le=100)
    validity_period: Optional[int] = Field(default=None, ge=1)
    instructor_id: Optional[int] = None
    scheduled_date: Optional[datetime] = None
    location: Optional[str] = None
    max_participants: Optional[int] = Field(default=None, ge=1)
    details: Dict[str, Any] = {}
class TrainingCreate(TrainingBase):
    factory_id: int
class TrainingUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    training_type: Optional[TrainingType] = None
    category: Optional[str] = Field(default=None, min_length=1)
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    department: Optional[str] = None
    target_audience: Optional[List[str]] = Field(default=None, min_length=1)
    objectives: Optional[List[str]] = Field(default=None, min_length=1)
    prerequisites: Optional[List[str]] = None
    assessment_required: Optional[bool] = None
    passing_score: Optional[int] = Field(default=None, ge=0, le=100)
    validity_period: Optional[int] = Field(default=None, ge=1)
    instructor_id: Optional[int] = None
    scheduled_date: Optional[datetime] = None
    location: Optional[str] = None
    max_participants: Optional[int] = Field(default=None, ge=1)
    details: Optional[Dict[str, Any]] = None
class TrainingSchedule(BaseModel):
    scheduled_date: datetime
    location: str = Field(min_length=1)

class TrainingMaterialCreate(BaseModel):
    title: str = Field(min_length=1)
    material_type: Literal["document", "video", "presentation", "quiz", "other"]
    content: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    order: int = Field(ge=1)
    is_required: bool = False
    estimated_minutes: Optional[int] = Field(default=None, ge=1)

class AssessmentQuestion(BaseModel):
    question: str = Field(min_length=1)
    type: Literal["multiple_choice", "true_false", "short_answer", "essay"]
    options: List[str] = []
    correct_answer: Optional[str] = None
    points: int = Field(ge=1)
class TrainingAssessmentCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    questions: List[AssessmentQuestion] = Field(min_length=1)
    passing_score: int = Field(ge=0, le=100)
    time_limit: Optional[int] = Field(default=None, ge=1)
    attempts_allowed: int = Field(default=1, ge=1)
class AssessmentSubmission(BaseModel):
    user_id: int
    answers: Dict[str, Any]

class AttendanceCreate(BaseModel):
    user_id: int
    status: Literal["present", "absent", "excused"] = "present"
class TrainingAttendance(BaseModel):
    id: int
    training_id: str
    user_id: int
    status: str
    attended_at: datetime
    recorded_by_id: Optional[int] = None
    best_score: Optional[int] = None
    certificate_number: Optional[str] = None
    certificate_valid_until: Optional[datetime] = None
    certificate_issued_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class Training(TrainingBase):
    id: str
    factory_id: int
    status: str
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    materials: List[Dict[str, Any]] = []
    assessments: List[Dict[str, Any]] = []
    created_by_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True
class TrainingDetail(Training):
    attendances: List[TrainingAttendance] = []
class TrainingPage(BaseModel):
    items: List[Training]
    total: int
    page: int
    limit: int
    total_pages: int
