"""Pydantic schemas for corrective-action plans (CAPs).

These are the typed contracts between the CAP generator and the API:
- the audit data a plan is derived from (findings + non-compliances)
- the generated plan itself (SMART actions, risk, cost, timeline)
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Dict, Optional, Literal
from pydantic import BaseModel, Field

Priority = Literal["critical", "high", "medium", "low"]


# ---------------------------
# Generator input
# ---------------------------

class FindingInput(BaseModel):
    type: Optional[str] = None
    severity: Optional[str] = None
    description: str = ""
    requirement_code: Optional[str] = None


class AuditData(BaseModel):
    audit_id: Optional[int] = None
    standard_name: Optional[str] = None
    findings: List[FindingInput] = Field(default_factory=list)
    non_compliances: List[FindingInput] = Field(default_factory=list)


class GenerateCAPReq(BaseModel):
    priority: Priority = "medium"
    assignee: str = "unassigned"


# ---------------------------
# Generated plan
# ---------------------------

class ActionItem(BaseModel):
    id: str
    title: str
    description: str
    type: Literal["immediate", "short_term", "long_term"]
    priority: str
    responsible: str = "To be assigned"
    timeframe: str
    due_date: datetime
    success_criteria: str
    status: str = "pending"
    milestones: List[str]
    resources: List[str]
    cost: int


class ActionPlan(BaseModel):
    actions: List[ActionItem]
    total_actions: int
    immediate_actions: int
    short_term_actions: int
    long_term_actions: int


class VerificationPlan(BaseModel):
    verification_methods: List[str]
    verification_schedule: str
    verification_criteria: str
    effectiveness_metrics: List[str]
    follow_up_required: bool
    follow_up_interval: str


class RiskAssessment(BaseModel):
    level: Priority
    score: float
    factors: List[str]
    mitigation: str


class CostEstimate(BaseModel):
    total: int
    breakdown: Dict[str, int]
    currency: str = "USD"
    notes: str


class Milestone(BaseModel):
    name: str
    days: int


class CriticalPathItem(BaseModel):
    action: str
    dependency: str = "None"
    duration: str = "24 hours"


class Timeline(BaseModel):
    start_date: datetime
    target_completion: datetime
    sla_days: int
    milestones: List[Milestone]
    critical_path: List[CriticalPathItem]


class GeneratedCAP(BaseModel):
    id: str
    audit_id: Optional[int] = None
    standard_id: str
    factory_id: Optional[int] = None
    priority: str
    status: str = "pending"
    title: str
    description: str
    assignee: str
    findings: List[FindingInput]
    non_compliances: List[FindingInput]
    action_plan: ActionPlan
    verification_plan: VerificationPlan
    stakeholders: List[str]
    risk_assessment: RiskAssessment
    cost_estimate: CostEstimate
    timeline: Timeline
